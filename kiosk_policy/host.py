# host.py
# Capability interface over the managed host and the value types it returns

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

ADMINISTRATORS_GROUP = "Administrators"
USERS_GROUP = "Users"


@dataclass
class ManagedAccount:
    name: str
    enabled: bool = True
    groups: List[str] = field(default_factory=list)
    full_name: str = ""
    description: str = ""

    @property
    def is_admin(self):
        return any(g.lower() == ADMINISTRATORS_GROUP.lower() for g in self.groups)


@dataclass
class ServiceState:
    name: str
    running: bool
    auto_start: bool
    disabled: bool = False


class HostControlPlane(ABC):
    """Everything the deployer needs from a managed host.

    Implementations raise HostError when a call cannot be carried out. Policy
    submission raises BridgeUnavailable, EditionUnsupported or
    SubmissionRejected so the applier can pick between the primary and the
    staged path.
    """

    # ---------- identity / platform ----------
    @abstractmethod
    def is_elevated(self) -> bool: ...

    @abstractmethod
    def os_build(self) -> int: ...

    @abstractmethod
    def edition(self) -> str: ...

    # ---------- services ----------
    @abstractmethod
    def service_state(self, name) -> Optional[ServiceState]:
        """None when the service is not installed."""

    @abstractmethod
    def start_service(self, name): ...

    @abstractmethod
    def stop_service(self, name): ...

    @abstractmethod
    def set_service_auto_start(self, name, auto_start): ...

    @abstractmethod
    def disable_service(self, name):
        """Set the start type to disabled; set_service_auto_start(name, True) undoes it."""

    # ---------- accounts ----------
    @abstractmethod
    def get_account(self, name) -> Optional[ManagedAccount]: ...

    @abstractmethod
    def create_account(self, name, password, full_name, description): ...

    @abstractmethod
    def enable_account(self, name): ...

    @abstractmethod
    def add_to_group(self, name, group): ...

    @abstractmethod
    def remove_from_group(self, name, group): ...

    @abstractmethod
    def delete_account(self, name): ...

    @abstractmethod
    def has_active_session(self, name) -> bool: ...

    # ---------- assigned access ----------
    @abstractmethod
    def bridge_available(self) -> bool: ...

    @abstractmethod
    def query_policy(self) -> Optional[str]:
        """Current policy XML through the primary bridge, None when absent."""

    @abstractmethod
    def query_policy_lowlevel(self) -> bool:
        """Whether policy state is visible through the low-level (registry) path."""

    @abstractmethod
    def submit_policy(self, xml_text): ...

    @abstractmethod
    def clear_policy(self): ...

    # ---------- secondary enforcement (AppLocker) ----------
    @abstractmethod
    def get_secondary_policy(self) -> Optional[str]: ...

    @abstractmethod
    def set_secondary_policy(self, xml_text): ...

    # ---------- filesystem ----------
    @abstractmethod
    def path_exists(self, path) -> bool: ...


@dataclass
class HostCapabilities:
    elevated: bool
    os_build: int
    edition: str
    service_present: bool

    @classmethod
    def probe(cls, host, service_name):
        """Read-only snapshot of what the prerequisite check looks at."""
        return cls(
            elevated=host.is_elevated(),
            os_build=host.os_build(),
            edition=host.edition(),
            service_present=host.service_state(service_name) is not None,
        )
