# models.py
# Records produced by apply / validate / remove

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class ApplyMechanism(Enum):
    PRIMARY = "primary"
    STAGED = "staged"


@dataclass
class PolicyApplicationRecord:
    applied: bool
    mechanism: ApplyMechanism
    timestamp: datetime = field(default_factory=datetime.now)
    staged_reason: Optional[str] = None
    artifacts: List[str] = field(default_factory=list)
    corrections: List[str] = field(default_factory=list)

    @property
    def needs_manual_follow_up(self):
        return self.mechanism is ApplyMechanism.STAGED


class CheckStatus(Enum):
    PASS = "Pass"
    FAIL = "Fail"
    WARNING = "Warning"
    INFO = "Info"


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: CheckStatus
    message: str
    critical: bool = False


class ValidationReport:
    def __init__(self):
        self._checks = []

    def add(self, name, status, message, critical=False):
        self._checks.append(CheckResult(name, status, message, critical))

    @property
    def checks(self):
        return tuple(self._checks)

    def get(self, name):
        for check in self._checks:
            if check.name == name:
                return check
        raise KeyError(name)

    def with_status(self, status):
        return [c for c in self._checks if c.status is status]

    @property
    def all_critical_passed(self):
        return not any(c.critical and c.status is CheckStatus.FAIL for c in self._checks)

    def __iter__(self):
        return iter(self._checks)

    def __len__(self):
        return len(self._checks)


@dataclass
class RemovalSummary:
    policy_removed: bool = False
    secondary_cleared: bool = False
    service_stopped: bool = False
    account_deleted: bool = False
    failed_steps: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def mutated_steps(self):
        flags = (
            ("policy", self.policy_removed),
            ("secondary", self.secondary_cleared),
            ("service", self.service_stopped),
            ("account", self.account_deleted),
        )
        return [name for name, mutated in flags if mutated]
