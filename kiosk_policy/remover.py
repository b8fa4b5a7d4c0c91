# remover.py
# Roll the host back: policy, AppLocker rules, service, optionally the account

import xml.etree.ElementTree as ET

from loguru import logger

from .errors import AccountInUse, KioskError, RemovalCancelled, RemoveError
from .models import RemovalSummary
from .prereq import PREREQ_SERVICE

APPLOCKER_RULE_COLLECTIONS = ("Appx", "Dll", "Exe", "Msi", "Script")


def not_configured_policy(collections=APPLOCKER_RULE_COLLECTIONS):
    """AppLocker policy with every rule collection set to NotConfigured."""
    rules = "".join(
        f'<RuleCollection Type="{name}" EnforcementMode="NotConfigured" />' for name in collections
    )
    return f'<AppLockerPolicy Version="1">{rules}</AppLockerPolicy>'


def is_not_configured(xml_text):
    """True when no rule collection is enforced and none carries rules."""
    if not xml_text:
        return False
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return False
    collections = root.findall("RuleCollection")
    return all(
        c.get("EnforcementMode", "NotConfigured") == "NotConfigured" and len(c) == 0 for c in collections
    )


class PolicyRemover:
    def __init__(self, host, confirmer, service_name=PREREQ_SERVICE):
        self.host = host
        self.confirmer = confirmer
        self.service_name = service_name

    def remove(self, account_name, remove_account=False, clear_secondary=False):
        prompt = f"This removes the kiosk configuration for '{account_name}'"
        if remove_account:
            prompt += " and DELETES the account and its profile"
        if not self.confirmer.confirm(prompt + "."):
            raise RemovalCancelled("Removal declined, nothing was changed")

        if remove_account and self.host.get_account(account_name) is not None \
                and self.host.has_active_session(account_name):
            raise AccountInUse(account_name)

        summary = RemovalSummary()
        summary.policy_removed = self._step(summary, "policy", self._remove_policy)
        if clear_secondary:
            summary.secondary_cleared = self._step(summary, "secondary", self._clear_secondary)
        summary.service_stopped = self._step(summary, "service", self._stop_service)
        if remove_account:
            summary.account_deleted = self._delete_account(account_name)

        changed = ", ".join(summary.mutated_steps) or "nothing"
        logger.success(f"[remove] Done, changed: {changed}")
        return summary

    def _step(self, summary, name, func):
        try:
            return func()
        except KioskError as e:
            logger.warning(f"[remove] Step '{name}' failed, continuing: {e}")
            summary.failed_steps.append((name, str(e)))
            return False

    def _remove_policy(self):
        if not self.host.bridge_available() or self.host.query_policy() is None:
            logger.info("[remove] No AssignedAccess configuration present")
            return False
        self.host.clear_policy()
        logger.info("[remove] AssignedAccess configuration cleared")
        return True

    def _clear_secondary(self):
        if is_not_configured(self.host.get_secondary_policy()):
            logger.info("[remove] AppLocker policy already NotConfigured")
            return False
        self.host.set_secondary_policy(not_configured_policy())
        logger.info("[remove] AppLocker rule collections set to NotConfigured")
        return True

    def _stop_service(self):
        state = self.host.service_state(self.service_name)
        if state is None or (not state.running and state.disabled):
            return False
        if state.running:
            self.host.stop_service(self.service_name)
        if not state.disabled:
            self.host.disable_service(self.service_name)
        logger.info(f"[remove] {self.service_name} stopped and disabled")
        return True

    def _delete_account(self, account_name):
        if self.host.get_account(account_name) is None:
            logger.info(f"[remove] Account '{account_name}' does not exist")
            return False
        try:
            self.host.delete_account(account_name)
        except KioskError as e:
            raise RemoveError(f"Could not delete account '{account_name}': {e}") from e
        logger.info(f"[remove] Account '{account_name}' deleted")
        return True
