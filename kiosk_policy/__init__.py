# Kiosk_Deployer: Windows multi-app kiosk (AssignedAccess) deployment and rollback

Program_Name = "Kiosk_Deployer"
Program_Version = "2.0"

from .applier import PolicyApplier
from .document import AllowedApp, PolicyDocument
from .errors import KioskError
from .host import HostCapabilities, HostControlPlane, ManagedAccount, ServiceState
from .models import (
    ApplyMechanism,
    CheckResult,
    CheckStatus,
    PolicyApplicationRecord,
    RemovalSummary,
    ValidationReport,
)
from .orchestrator import DeploymentOutcome, DeploymentStep, DeploySettings, Orchestrator
from .prereq import MINIMUM_OS_BUILD, PrerequisiteChecker
from .provision import AccountProvisioner
from .remover import PolicyRemover
from .validator import PolicyValidator

__all__ = [
    "Program_Name",
    "Program_Version",
    "AccountProvisioner",
    "AllowedApp",
    "ApplyMechanism",
    "CheckResult",
    "CheckStatus",
    "DeploySettings",
    "DeploymentOutcome",
    "DeploymentStep",
    "HostCapabilities",
    "HostControlPlane",
    "KioskError",
    "MINIMUM_OS_BUILD",
    "ManagedAccount",
    "Orchestrator",
    "PolicyApplicationRecord",
    "PolicyApplier",
    "PolicyDocument",
    "PolicyRemover",
    "PolicyValidator",
    "PrerequisiteChecker",
    "RemovalSummary",
    "ServiceState",
    "ValidationReport",
]
