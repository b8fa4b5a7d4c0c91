# prereq.py
# Read-only host checks that must pass before anything is mutated

from loguru import logger

from .errors import InsufficientPrivilege, MissingPrerequisiteService, UnsupportedPlatformVersion

# Windows 10 1709, first build that accepts multi-app AssignedAccess
MINIMUM_OS_BUILD = 16299
PREREQ_SERVICE = "AppIDSvc"


class PrerequisiteChecker:
    def __init__(self, min_build=MINIMUM_OS_BUILD, service_name=PREREQ_SERVICE):
        self.min_build = int(min_build)
        self.service_name = service_name

    def check(self, capabilities):
        """Raise a PrereqError subclass for the first unmet requirement."""
        if not capabilities.elevated:
            raise InsufficientPrivilege("Administrator rights are required (run from an elevated prompt)")
        if capabilities.os_build < self.min_build:
            raise UnsupportedPlatformVersion(capabilities.os_build, self.min_build)
        if not capabilities.service_present:
            raise MissingPrerequisiteService(self.service_name)
        logger.info(
            f"[prereq] Elevated, build {capabilities.os_build} ({capabilities.edition}), "
            f"service {self.service_name} present"
        )
