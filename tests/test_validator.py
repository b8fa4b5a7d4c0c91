from kiosk_policy.errors import BridgeUnavailable, HostError
from kiosk_policy.fakehost import BRIDGE_MISSING, FakeHost
from kiosk_policy.host import ADMINISTRATORS_GROUP, ServiceState, USERS_GROUP
from kiosk_policy.models import CheckStatus
from kiosk_policy.validator import (
    CHECK_ACCOUNT,
    CHECK_ARTIFACT,
    CHECK_POLICY_BRIDGE,
    CHECK_POLICY_REGISTRY,
    CHECK_PRIVILEGES,
    CHECK_SERVICE,
    PolicyValidator,
)

from tests.conftest import REAL_SCANNER


def healthy_host():
    host = FakeHost(services={"AppIDSvc": ServiceState("AppIDSvc", True, True)}, files=[REAL_SCANNER])
    host.add_account("KioskUser")
    host.policy_records.append("<AssignedAccessConfiguration />")
    return host


def test_healthy_host_passes_everything(policy_file):
    host = healthy_host()

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file, app_paths=[REAL_SCANNER])

    assert [c.status for c in report] == [CheckStatus.PASS] * len(report)
    assert [c.name for c in report][:3] == [CHECK_PRIVILEGES, CHECK_ACCOUNT, CHECK_SERVICE]
    assert report.all_critical_passed
    assert host.mutations == []


def test_failures_do_not_stop_later_checks(policy_file, tmp_path):
    host = FakeHost(elevated=False, services={})

    report = PolicyValidator(host).validate("KioskUser", policy_path=str(tmp_path / "gone.xml"),
                                            app_paths=[r"C:\missing.exe"])

    statuses = {c.name: c.status for c in report}
    assert statuses[CHECK_PRIVILEGES] is CheckStatus.FAIL
    assert statuses[CHECK_ACCOUNT] is CheckStatus.FAIL
    assert statuses[CHECK_SERVICE] is CheckStatus.FAIL
    assert statuses[CHECK_POLICY_BRIDGE] is CheckStatus.WARNING
    assert statuses[CHECK_POLICY_REGISTRY] is CheckStatus.WARNING
    assert statuses[r"Application: C:\missing.exe"] is CheckStatus.WARNING
    assert statuses[CHECK_ARTIFACT] is CheckStatus.FAIL
    assert not report.all_critical_passed


def test_disabled_account_fails(policy_file):
    host = healthy_host()
    host.accounts["kioskuser"].enabled = False

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_ACCOUNT).status is CheckStatus.FAIL


def test_admin_account_fails(policy_file):
    host = healthy_host()
    host.add_account("KioskUser", groups=(USERS_GROUP, ADMINISTRATORS_GROUP))

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_ACCOUNT).status is CheckStatus.FAIL
    assert "administrator" in report.get(CHECK_ACCOUNT).message


def test_manual_start_service_is_only_a_warning(policy_file):
    host = healthy_host()
    host.services["AppIDSvc"].auto_start = False

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_SERVICE).status is CheckStatus.WARNING
    assert report.all_critical_passed


def test_policy_seen_by_one_path_only(policy_file):
    host = healthy_host()
    host.lowlevel_override = False

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.PASS
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.INFO


def test_manually_applied_policy_visible_in_registry_only(policy_file):
    host = healthy_host()
    host.bridge = BRIDGE_MISSING
    host.policy_records = []
    host.lowlevel_override = True

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.INFO
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.PASS


def test_policy_absent_everywhere_is_not_fatal(policy_file):
    host = healthy_host()
    host.policy_records = []

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.WARNING
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.WARNING
    assert report.all_critical_passed


def test_expect_absent_after_removal(policy_file):
    host = healthy_host()
    host.policy_records = []

    report = PolicyValidator(host).validate("KioskUser", expect_policy=False, policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.INFO
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.INFO


def test_expect_absent_but_still_present_warns(policy_file):
    host = healthy_host()

    report = PolicyValidator(host).validate("KioskUser", expect_policy=False, policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.WARNING


class ExplodingHost(FakeHost):
    def get_account(self, name):
        raise HostError("NetUserGetInfo: RPC server unavailable")


def test_host_query_error_becomes_a_failed_check(policy_file):
    host = ExplodingHost(services={"AppIDSvc": ServiceState("AppIDSvc", True, True)})

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_ACCOUNT).status is CheckStatus.FAIL
    assert "RPC server unavailable" in report.get(CHECK_ACCOUNT).message
    assert report.get(CHECK_SERVICE).status is CheckStatus.PASS
    assert report.get(CHECK_ARTIFACT).status is CheckStatus.PASS


class DeniedBridgeHost(FakeHost):
    def query_policy(self):
        raise BridgeUnavailable("Access denied 0x80041003")


def test_bridge_query_error_does_not_hide_registry_check(policy_file):
    host = DeniedBridgeHost(services={"AppIDSvc": ServiceState("AppIDSvc", True, True)})
    host.add_account("KioskUser")
    host.lowlevel_override = True

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert [c.name for c in report] == [CHECK_PRIVILEGES, CHECK_ACCOUNT, CHECK_SERVICE,
                                        CHECK_POLICY_BRIDGE, CHECK_POLICY_REGISTRY, CHECK_ARTIFACT]
    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.WARNING
    assert "Access denied" in report.get(CHECK_POLICY_BRIDGE).message
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.PASS
    assert report.all_critical_passed


class BrokenRegistryHost(FakeHost):
    def query_policy_lowlevel(self):
        raise HostError("RegOpenKeyEx: access is denied")


def test_registry_query_error_does_not_hide_bridge_check(policy_file):
    host = BrokenRegistryHost(services={"AppIDSvc": ServiceState("AppIDSvc", True, True)})
    host.add_account("KioskUser")
    host.policy_records.append("<AssignedAccessConfiguration />")

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.PASS
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.WARNING


def test_disabled_service_fails(policy_file):
    host = healthy_host()
    host.services["AppIDSvc"] = ServiceState("AppIDSvc", False, False, disabled=True)

    report = PolicyValidator(host).validate("KioskUser", policy_path=policy_file)

    assert report.get(CHECK_SERVICE).status is CheckStatus.FAIL
    assert "disabled" in report.get(CHECK_SERVICE).message


def test_stopped_service_is_expected_after_removal(policy_file):
    host = healthy_host()
    host.policy_records = []
    host.services["AppIDSvc"] = ServiceState("AppIDSvc", False, False, disabled=True)

    report = PolicyValidator(host).validate("KioskUser", expect_policy=False, policy_path=policy_file)

    assert report.get(CHECK_SERVICE).status is CheckStatus.INFO
    assert report.all_critical_passed
