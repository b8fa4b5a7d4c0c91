# fakehost.py
# In-memory HostControlPlane used by --simulate and the test suite

import ntpath
import os

from .errors import BridgeUnavailable, EditionUnsupported, HostError, SubmissionRejected
from .host import HostControlPlane, ManagedAccount, ServiceState, USERS_GROUP

BRIDGE_OK = "ok"
BRIDGE_MISSING = "missing"
BRIDGE_EDITION = "edition"
BRIDGE_REJECT = "reject"

DERIVED_APPLOCKER_POLICY = (
    '<AppLockerPolicy Version="1">'
    '<RuleCollection Type="Exe" EnforcementMode="Enabled" />'
    '<RuleCollection Type="Appx" EnforcementMode="Enabled" />'
    "</AppLockerPolicy>"
)


class FakeHost(HostControlPlane):
    """Simulated Windows host. Every mutating call is appended to self.mutations."""

    def __init__(self, elevated=True, build=19045, edition="Professional", services=None,
                 bridge=BRIDGE_OK, files=()):
        self.elevated = elevated
        self.build = build
        self._edition = edition
        if services is None:
            services = {"AppIDSvc": ServiceState("AppIDSvc", running=False, auto_start=False)}
        self.services = services
        self.bridge = bridge
        self.accounts = {}
        self.sessions = set()
        self.policy_records = []
        self.lowlevel_override = None
        self.secondary_policy = None
        self.files = {ntpath.normcase(f) for f in files}
        self.failing = {}
        self.mutations = []

    # ---------- test helpers ----------
    def add_account(self, name, enabled=True, groups=(USERS_GROUP,)):
        self.accounts[name.lower()] = ManagedAccount(name, enabled=enabled, groups=list(groups))

    def fail_on(self, method, message="simulated failure"):
        """Make a mutating method raise HostError."""
        self.failing[method] = message

    def _mutate(self, method, *args):
        if method in self.failing:
            raise HostError(f"{method}: {self.failing[method]}")
        self.mutations.append((method,) + args)

    def _account(self, name):
        account = self.accounts.get(name.lower())
        if account is None:
            raise HostError(f"Account '{name}' not found")
        return account

    def _service(self, name):
        service = self.services.get(name)
        if service is None:
            raise HostError(f"Service '{name}' not found")
        return service

    # ---------- identity / platform ----------
    def is_elevated(self):
        return self.elevated

    def os_build(self):
        return self.build

    def edition(self):
        return self._edition

    # ---------- services ----------
    def service_state(self, name):
        service = self.services.get(name)
        if service is None:
            return None
        return ServiceState(service.name, service.running, service.auto_start, service.disabled)

    def start_service(self, name):
        service = self._service(name)
        if service.disabled:
            raise HostError(f"{name}: the service cannot be started because it is disabled")
        self._mutate("start_service", name)
        service.running = True

    def stop_service(self, name):
        service = self._service(name)
        self._mutate("stop_service", name)
        service.running = False

    def set_service_auto_start(self, name, auto_start):
        service = self._service(name)
        self._mutate("set_service_auto_start", name, auto_start)
        service.auto_start = auto_start
        service.disabled = False

    def disable_service(self, name):
        service = self._service(name)
        self._mutate("disable_service", name)
        service.auto_start = False
        service.disabled = True

    # ---------- accounts ----------
    def get_account(self, name):
        account = self.accounts.get(name.lower())
        if account is None:
            return None
        return ManagedAccount(account.name, account.enabled, list(account.groups),
                              account.full_name, account.description)

    def create_account(self, name, password, full_name, description):
        if name.lower() in self.accounts:
            raise HostError(f"Account '{name}' already exists")
        self._mutate("create_account", name)
        self.accounts[name.lower()] = ManagedAccount(name, True, [], full_name, description)

    def enable_account(self, name):
        account = self._account(name)
        self._mutate("enable_account", name)
        account.enabled = True

    def add_to_group(self, name, group):
        account = self._account(name)
        self._mutate("add_to_group", name, group)
        if group not in account.groups:
            account.groups.append(group)

    def remove_from_group(self, name, group):
        account = self._account(name)
        self._mutate("remove_from_group", name, group)
        account.groups = [g for g in account.groups if g.lower() != group.lower()]

    def delete_account(self, name):
        self._account(name)
        self._mutate("delete_account", name)
        del self.accounts[name.lower()]

    def has_active_session(self, name):
        return name.lower() in {s.lower() for s in self.sessions}

    # ---------- assigned access ----------
    def bridge_available(self):
        return self.bridge != BRIDGE_MISSING

    def query_policy(self):
        if not self.bridge_available() or not self.policy_records:
            return None
        return self.policy_records[-1]

    def query_policy_lowlevel(self):
        if self.lowlevel_override is not None:
            return self.lowlevel_override
        return bool(self.policy_records)

    def submit_policy(self, xml_text):
        if self.bridge == BRIDGE_MISSING:
            raise BridgeUnavailable("MDM_AssignedAccess class not found in root\\cimv2\\mdm\\dmmap")
        if self.bridge == BRIDGE_EDITION:
            raise EditionUnsupported(f"Edition '{self._edition}' refused the AssignedAccess configuration")
        if self.bridge == BRIDGE_REJECT:
            raise SubmissionRejected("Generic failure (0x80041001): configuration XML failed schema validation")
        self._mutate("submit_policy")
        # no replace semantics here, callers must clear first
        self.policy_records.append(xml_text)
        self.secondary_policy = DERIVED_APPLOCKER_POLICY

    def clear_policy(self):
        if not self.bridge_available():
            raise BridgeUnavailable("MDM_AssignedAccess class not found in root\\cimv2\\mdm\\dmmap")
        self._mutate("clear_policy")
        self.policy_records = []

    # ---------- secondary enforcement ----------
    def get_secondary_policy(self):
        return self.secondary_policy

    def set_secondary_policy(self, xml_text):
        self._mutate("set_secondary_policy")
        self.secondary_policy = xml_text

    # ---------- filesystem ----------
    def path_exists(self, path):
        return ntpath.normcase(path) in self.files or os.path.exists(path)
