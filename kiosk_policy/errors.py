# errors.py
# Exception hierarchy for kiosk deployment / rollback


class KioskError(Exception):
    """Base class for every error the deployer reports to the operator."""


class HostError(KioskError):
    """A call into the managed host failed."""


class LockHeldError(KioskError):
    pass


# ---------------- Prerequisites ----------------
class PrereqError(KioskError):
    pass


class InsufficientPrivilege(PrereqError):
    pass


class UnsupportedPlatformVersion(PrereqError):
    def __init__(self, build, minimum):
        super().__init__(f"OS build {build} is below the supported minimum {minimum}")
        self.build = build
        self.minimum = minimum


class MissingPrerequisiteService(PrereqError):
    def __init__(self, service):
        super().__init__(f"Required service '{service}' is not installed")
        self.service = service


# ---------------- Accounts ----------------
class AccountError(KioskError):
    pass


class AccountPreconditionFailed(AccountError):
    pass


class AccountPrivilegeError(AccountError):
    pass


class AccountInUse(AccountError):
    def __init__(self, account):
        super().__init__(f"Account '{account}' has an active session")
        self.account = account


# ---------------- Policy document ----------------
class PolicyDocumentError(KioskError):
    pass


class PlaceholderError(PolicyDocumentError):
    def __init__(self, placeholder, matches):
        super().__init__(
            f"Expected exactly one application entry with path '{placeholder}', found {matches}"
        )
        self.placeholder = placeholder
        self.matches = matches


# ---------------- Apply ----------------
class ApplyError(KioskError):
    pass


class RecoverableApplyError(ApplyError):
    """Primary bridge could not take the policy; staging for manual application is possible."""


class BridgeUnavailable(RecoverableApplyError):
    pass


class EditionUnsupported(RecoverableApplyError):
    pass


class FatalApplyError(ApplyError):
    pass


class SubmissionRejected(FatalApplyError):
    def __init__(self, detail):
        super().__init__(f"Policy rejected by the platform: {detail}")
        self.detail = detail


# ---------------- Remove ----------------
class RemoveError(KioskError):
    pass


class RemovalCancelled(KioskError):
    pass
