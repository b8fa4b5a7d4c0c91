import os

import pytest

from kiosk_policy.applier import (
    INSTRUCTIONS_NAME,
    REASON_BRIDGE_UNAVAILABLE,
    REASON_EDITION_UNSUPPORTED,
    STAGED_POLICY_NAME,
    PolicyApplier,
)
from kiosk_policy.document import PolicyDocument
from kiosk_policy.errors import AccountPreconditionFailed, PolicyDocumentError, SubmissionRejected
from kiosk_policy.fakehost import BRIDGE_EDITION, BRIDGE_MISSING, BRIDGE_REJECT
from kiosk_policy.models import ApplyMechanism
from kiosk_policy.validator import CHECK_ACCOUNT, CHECK_POLICY_BRIDGE, CHECK_POLICY_REGISTRY, PolicyValidator
from kiosk_policy.models import CheckStatus

from tests.conftest import POLICY_XML


@pytest.fixture
def policy():
    return PolicyDocument.from_string(POLICY_XML)


@pytest.fixture
def applier(kiosk_host, tmp_path, no_sleep):
    return PolicyApplier(kiosk_host, str(tmp_path / "staged"), settle_delay=2, sleep=no_sleep)


def test_apply_through_primary_bridge(applier, kiosk_host, policy, tmp_path):
    record = applier.apply(policy, "KioskUser")

    assert record.applied is True
    assert record.mechanism is ApplyMechanism.PRIMARY
    assert record.artifacts == []
    assert kiosk_host.policy_records == [policy.to_xml()]
    assert not (tmp_path / "staged").exists()


def test_apply_starts_service_and_waits(applier, kiosk_host, policy, sleeps):
    record = applier.apply(policy, "KioskUser")

    state = kiosk_host.service_state("AppIDSvc")
    assert state.running and state.auto_start
    assert sleeps == [2.0]
    assert "started AppIDSvc" in record.corrections


def test_running_service_needs_no_wait(applier, kiosk_host, policy, sleeps):
    kiosk_host.services["AppIDSvc"].running = True
    kiosk_host.services["AppIDSvc"].auto_start = True

    applier.apply(policy, "KioskUser")

    assert sleeps == []
    assert not any(m[0] in ("start_service", "set_service_auto_start") for m in kiosk_host.mutations)


def test_disabled_account_is_enabled_as_correction(applier, kiosk_host, policy):
    kiosk_host.accounts["kioskuser"].enabled = False

    record = applier.apply(policy, "KioskUser")

    assert kiosk_host.get_account("KioskUser").enabled
    assert "enabled account KioskUser" in record.corrections
    assert record.applied


def test_missing_account_aborts_before_mutation(host, policy, tmp_path, no_sleep):
    applier = PolicyApplier(host, str(tmp_path), sleep=no_sleep)

    with pytest.raises(AccountPreconditionFailed):
        applier.apply(policy, "KioskUser")
    assert host.mutations == []


def test_account_mismatch_aborts_before_mutation(applier, kiosk_host, policy):
    kiosk_host.add_account("Other")
    with pytest.raises(PolicyDocumentError, match="targets account"):
        applier.apply(policy, "Other")
    assert kiosk_host.mutations == []


def test_apply_twice_keeps_a_single_policy(applier, kiosk_host, policy):
    applier.apply(policy, "KioskUser")
    first = PolicyValidator(kiosk_host).validate("KioskUser")

    applier.apply(policy, "KioskUser")
    second = PolicyValidator(kiosk_host).validate("KioskUser")

    assert len(kiosk_host.policy_records) == 1
    assert [m[0] for m in kiosk_host.mutations].count("clear_policy") == 1
    assert [(c.name, c.status) for c in first] == [(c.name, c.status) for c in second]


def test_apply_then_validate_passes_account_and_policy(applier, kiosk_host, policy):
    applier.apply(policy, "KioskUser")

    report = PolicyValidator(kiosk_host).validate("KioskUser")

    assert report.get(CHECK_ACCOUNT).status is CheckStatus.PASS
    assert report.get(CHECK_POLICY_BRIDGE).status is CheckStatus.PASS
    assert report.get(CHECK_POLICY_REGISTRY).status is CheckStatus.PASS


def test_missing_bridge_stages_policy(applier, kiosk_host, policy, tmp_path):
    kiosk_host.bridge = BRIDGE_MISSING

    record = applier.apply(policy, "KioskUser")

    assert record.applied is False
    assert record.mechanism is ApplyMechanism.STAGED
    assert record.needs_manual_follow_up
    assert record.staged_reason == REASON_BRIDGE_UNAVAILABLE
    staged = tmp_path / "staged"
    assert sorted(os.path.basename(p) for p in record.artifacts) == sorted([INSTRUCTIONS_NAME, STAGED_POLICY_NAME])
    assert PolicyDocument.load(str(staged / STAGED_POLICY_NAME)).apps == policy.apps
    instructions = (staged / INSTRUCTIONS_NAME).read_text(encoding="utf-8")
    assert "KioskUser" in instructions
    assert REASON_BRIDGE_UNAVAILABLE in instructions
    assert kiosk_host.policy_records == []


def test_edition_refusal_is_staged_with_its_own_reason(applier, kiosk_host, policy):
    kiosk_host.bridge = BRIDGE_EDITION

    record = applier.apply(policy, "KioskUser")

    assert record.mechanism is ApplyMechanism.STAGED
    assert record.staged_reason == REASON_EDITION_UNSUPPORTED


def test_rejected_submission_is_fatal(applier, kiosk_host, policy, tmp_path):
    kiosk_host.bridge = BRIDGE_REJECT

    with pytest.raises(SubmissionRejected) as exc:
        applier.apply(policy, "KioskUser")
    assert "schema" in exc.value.detail
    assert not (tmp_path / "staged").exists()
