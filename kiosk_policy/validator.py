# validator.py
# Read-only checklist over the host after apply (or after remove)

from loguru import logger

from .errors import KioskError
from .models import CheckStatus, ValidationReport
from .prereq import PREREQ_SERVICE

CHECK_PRIVILEGES = "Administrator privileges"
CHECK_ACCOUNT = "Kiosk account"
CHECK_SERVICE = "Application Identity service"
CHECK_POLICY_BRIDGE = "Assigned Access (CIM bridge)"
CHECK_POLICY_REGISTRY = "Assigned Access (registry)"
CHECK_APP = "Application"
CHECK_ARTIFACT = "Policy document"


class PolicyValidator:
    """Every check runs even if an earlier one failed; nothing here mutates the host."""

    def __init__(self, host, service_name=PREREQ_SERVICE):
        self.host = host
        self.service_name = service_name

    def validate(self, account_name, expect_policy=True, policy_path=None, app_paths=()):
        report = ValidationReport()
        self._guarded(report, CHECK_PRIVILEGES, True, self._check_privileges, report)
        self._guarded(report, CHECK_ACCOUNT, True, self._check_account, report, account_name)
        self._guarded(report, CHECK_SERVICE, expect_policy, self._check_service, report, expect_policy)
        self._check_policy(report, expect_policy)
        for path in app_paths:
            self._guarded(report, f"{CHECK_APP}: {path}", False, self._check_app, report, path)
        self._guarded(report, CHECK_ARTIFACT, True, self._check_artifact, report, policy_path)

        failed = len(report.with_status(CheckStatus.FAIL))
        warnings = len(report.with_status(CheckStatus.WARNING))
        logger.info(f"[validate] {len(report)} checks, {failed} failed, {warnings} warnings")
        return report

    def _guarded(self, report, name, critical, check, *args):
        """A host query that blows up becomes a result of its own, later checks still run."""
        try:
            check(*args)
        except KioskError as e:
            status = CheckStatus.FAIL if critical else CheckStatus.WARNING
            report.add(name, status, f"Query failed: {e}", critical=critical)
            logger.debug(f"[validate] {name} query failed: {e}")

    def _check_privileges(self, report):
        if self.host.is_elevated():
            report.add(CHECK_PRIVILEGES, CheckStatus.PASS, "Running elevated", critical=True)
        else:
            report.add(CHECK_PRIVILEGES, CheckStatus.FAIL,
                       "Not elevated, some checks may be incomplete", critical=True)

    def _check_account(self, report, account_name):
        account = self.host.get_account(account_name)
        if account is None:
            report.add(CHECK_ACCOUNT, CheckStatus.FAIL, f"'{account_name}' does not exist", critical=True)
        elif not account.enabled:
            report.add(CHECK_ACCOUNT, CheckStatus.FAIL, f"'{account_name}' is disabled", critical=True)
        elif account.is_admin:
            report.add(CHECK_ACCOUNT, CheckStatus.FAIL,
                       f"'{account_name}' is an administrator, kiosk accounts must be standard users",
                       critical=True)
        else:
            report.add(CHECK_ACCOUNT, CheckStatus.PASS, f"'{account_name}' exists and is enabled", critical=True)

    def _check_service(self, report, expect_policy=True):
        state = self.host.service_state(self.service_name)
        if not expect_policy:
            # after removal the service is expected to be stopped
            if state is None:
                message = f"{self.service_name} is not installed"
            elif state.running:
                message = f"{self.service_name} is still running"
            else:
                message = f"{self.service_name} is stopped" + (" and disabled" if state.disabled else "")
            report.add(CHECK_SERVICE, CheckStatus.INFO, message)
        elif state is None:
            report.add(CHECK_SERVICE, CheckStatus.FAIL, f"{self.service_name} is not installed", critical=True)
        elif state.disabled:
            report.add(CHECK_SERVICE, CheckStatus.FAIL, f"{self.service_name} is disabled", critical=True)
        elif not state.running:
            report.add(CHECK_SERVICE, CheckStatus.FAIL, f"{self.service_name} is not running", critical=True)
        elif not state.auto_start:
            report.add(CHECK_SERVICE, CheckStatus.WARNING,
                       f"{self.service_name} is running but not set to automatic start", critical=True)
        else:
            report.add(CHECK_SERVICE, CheckStatus.PASS,
                       f"{self.service_name} is running (automatic start)", critical=True)

    def _policy_via_bridge(self):
        return self.host.bridge_available() and self.host.query_policy() is not None

    def _query_paths(self):
        """Query each path on its own; a path that raises maps to its error instead of a bool."""
        results = {}
        for name, query in (
            (CHECK_POLICY_BRIDGE, self._policy_via_bridge),
            (CHECK_POLICY_REGISTRY, self.host.query_policy_lowlevel),
        ):
            try:
                results[name] = bool(query())
            except KioskError as e:
                logger.debug(f"[validate] {name} query failed: {e}")
                results[name] = e
        return results

    def _check_policy(self, report, expect_policy):
        results = self._query_paths()

        for name, other in (
            (CHECK_POLICY_BRIDGE, CHECK_POLICY_REGISTRY),
            (CHECK_POLICY_REGISTRY, CHECK_POLICY_BRIDGE),
        ):
            seen = results[name]
            other_seen = results[other] is True
            if isinstance(seen, KioskError):
                report.add(name, CheckStatus.WARNING, f"Query failed: {seen}")
            elif not expect_policy:
                if seen:
                    report.add(name, CheckStatus.WARNING, "Configuration still present")
                else:
                    report.add(name, CheckStatus.INFO, "No configuration present")
            elif seen:
                report.add(name, CheckStatus.PASS, "Configuration present")
            elif other_seen:
                report.add(name, CheckStatus.INFO, "Not visible through this path, the other path sees it")
            else:
                report.add(name, CheckStatus.WARNING,
                           "No configuration found; apply it manually if it was staged")

    def _check_app(self, report, path):
        name = f"{CHECK_APP}: {path}"
        if self.host.path_exists(path):
            report.add(name, CheckStatus.PASS, "Found on disk")
        else:
            report.add(name, CheckStatus.WARNING, "Not found on disk, the kiosk tile will not launch")

    def _check_artifact(self, report, policy_path):
        if policy_path and self.host.path_exists(policy_path):
            report.add(CHECK_ARTIFACT, CheckStatus.PASS, policy_path, critical=True)
        else:
            report.add(CHECK_ARTIFACT, CheckStatus.FAIL, f"Missing: {policy_path or '(not set)'}", critical=True)
