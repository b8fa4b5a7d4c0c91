# applier.py
# Drive the host from "no policy" / "old policy" to "new policy applied"

import os
import time

from loguru import logger

from .errors import (
    AccountPreconditionFailed,
    BridgeUnavailable,
    EditionUnsupported,
    MissingPrerequisiteService,
    PolicyDocumentError,
    RecoverableApplyError,
)
from .models import ApplyMechanism, PolicyApplicationRecord
from .prereq import PREREQ_SERVICE

STAGED_POLICY_NAME = "AssignedAccess_Staged.xml"
INSTRUCTIONS_NAME = "AssignedAccess_Instructions.txt"
DEFAULT_SETTLE_DELAY = 3.0

REASON_BRIDGE_UNAVAILABLE = "bridge-unavailable"
REASON_EDITION_UNSUPPORTED = "edition-unsupported"

INSTRUCTIONS_TEMPLATE = """\
Kiosk policy staged for manual application
==========================================

Account : {account}
Policy  : {policy}
Reason  : {reason}
Detail  : {detail}

The policy could not be pushed through the MDM WMI bridge
(root\\cimv2\\mdm\\dmmap : MDM_AssignedAccess). Apply it with one of:

1. Provisioning package
   - Open Windows Configuration Designer, create an "Advanced provisioning" project.
   - Runtime settings > AssignedAccess > MultiAppAssignedAccessSettings: paste the staged XML.
   - Export the .ppkg and install it on this machine (double-click, or
     Install-ProvisioningPackage -PackagePath <file> -QuietInstall).

2. MDM / Intune
   - Custom OMA-URI: ./Vendor/MSFT/AssignedAccess/Configuration (String, XML content of the staged file).

3. WMI bridge as SYSTEM
   - psexec.exe -i -s powershell.exe
   - $obj = Get-CimInstance -Namespace root\\cimv2\\mdm\\dmmap -ClassName MDM_AssignedAccess
   - $obj.Configuration = [System.Net.WebUtility]::HtmlEncode((Get-Content -Raw '{policy}'))
   - Set-CimInstance -CimInstance $obj

Sign out and sign in as '{account}' afterwards, then run the validate command.
"""


class PolicyApplier:
    def __init__(self, host, staging_dir, service_name=PREREQ_SERVICE,
                 settle_delay=DEFAULT_SETTLE_DELAY, sleep=time.sleep):
        self.host = host
        self.staging_dir = staging_dir
        self.service_name = service_name
        self.settle_delay = float(settle_delay)
        self.sleep = sleep

    def apply(self, policy, account_name):
        if not policy.account_matches(account_name):
            raise PolicyDocumentError(
                f"Policy document targets account '{policy.account}', not '{account_name}'"
            )

        corrections = self._ensure_account(account_name)
        corrections.extend(self._ensure_service())

        try:
            if not self.host.bridge_available():
                raise BridgeUnavailable("MDM_AssignedAccess is not available on this host")
            if self.host.query_policy() is not None:
                logger.info("[apply] Existing AssignedAccess configuration found, clearing it first")
                self.host.clear_policy()
            logger.info(f"[apply] Submitting AssignedAccess configuration for '{account_name}'")
            self.host.submit_policy(policy.to_xml())
        except RecoverableApplyError as e:
            return self._stage(policy, account_name, e, corrections)

        logger.success(f"[apply] Kiosk policy applied for '{account_name}'")
        return PolicyApplicationRecord(True, ApplyMechanism.PRIMARY, corrections=corrections)

    def _ensure_account(self, account_name):
        account = self.host.get_account(account_name)
        if account is None:
            raise AccountPreconditionFailed(
                f"Account '{account_name}' does not exist; provision it first (or drop --skip-account)"
            )
        if account.enabled:
            return []
        self.host.enable_account(account_name)
        logger.warning(f"[apply] Account '{account_name}' was disabled, enabled it")
        return [f"enabled account {account_name}"]

    def _ensure_service(self):
        corrections = []
        state = self.host.service_state(self.service_name)
        if state is None:
            raise MissingPrerequisiteService(self.service_name)
        if not state.auto_start:
            self.host.set_service_auto_start(self.service_name, True)
            corrections.append(f"set {self.service_name} to automatic start")
            logger.info(f"[apply] {self.service_name} set to automatic start")
        if not state.running:
            self.host.start_service(self.service_name)
            corrections.append(f"started {self.service_name}")
            logger.info(f"[apply] Started {self.service_name}, waiting {self.settle_delay:g}s for it to settle")
            self.sleep(self.settle_delay)
        return corrections

    def _stage(self, policy, account_name, error, corrections):
        reason = REASON_EDITION_UNSUPPORTED if isinstance(error, EditionUnsupported) else REASON_BRIDGE_UNAVAILABLE
        logger.warning(f"[apply] Primary bridge did not take the policy ({reason}): {error}")

        os.makedirs(self.staging_dir, exist_ok=True)
        policy_path = os.path.join(self.staging_dir, STAGED_POLICY_NAME)
        instructions_path = os.path.join(self.staging_dir, INSTRUCTIONS_NAME)
        policy.write(policy_path)
        with open(instructions_path, "w", encoding="utf-8") as f:
            f.write(INSTRUCTIONS_TEMPLATE.format(
                account=account_name, policy=policy_path, reason=reason, detail=error,
            ))

        logger.warning(f"[apply] Policy staged for manual application: {policy_path}")
        logger.warning(f"[apply] Instructions: {instructions_path}")
        return PolicyApplicationRecord(
            False, ApplyMechanism.STAGED,
            staged_reason=reason,
            artifacts=[policy_path, instructions_path],
            corrections=corrections,
        )
