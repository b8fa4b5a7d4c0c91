# orchestrator.py
# Ordered deployment pipeline: prereq -> app path -> account -> apply -> validate -> report

import ntpath
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from loguru import logger

from .applier import DEFAULT_SETTLE_DELAY, PolicyApplier
from .document import PolicyDocument
from .errors import KioskError
from .host import HostCapabilities
from .hostlock import HostLock
from .log_library import log_exception
from .models import PolicyApplicationRecord, ValidationReport
from .prereq import MINIMUM_OS_BUILD, PREREQ_SERVICE, PrerequisiteChecker
from .provision import AccountProvisioner
from .report import log_outcome, log_validation
from .validator import PolicyValidator

DEFAULT_ACCOUNT = "KioskUser"
DEFAULT_PLACEHOLDER = r"C:\Program Files\ScannerApp\scanner.exe"


def resolve_app_path(host, placeholder, app_path=None, search_paths=()):
    """Real location of the application behind the placeholder entry, or None."""
    if app_path:
        if not host.path_exists(app_path):
            logger.warning(f"[app] {app_path} does not exist on this host")
        return app_path
    for candidate in list(search_paths) + [placeholder]:
        if candidate and host.path_exists(candidate):
            return candidate
    return None


def deployed_app_paths(document, placeholder, real_path):
    """Desktop app paths as they read once the placeholder has been patched."""
    if not real_path:
        return document.desktop_app_paths
    wanted = ntpath.normcase(placeholder)
    return tuple(real_path if ntpath.normcase(p) == wanted else p for p in document.desktop_app_paths)


class DeploymentStep(Enum):
    PREREQ = 1
    RESOLVE_APP_PATH = 2
    PROVISION_ACCOUNT = 3
    APPLY = 4
    VALIDATE = 5
    REPORT = 6


@dataclass
class DeploySettings:
    policy_path: str
    staging_dir: str
    account_name: str = DEFAULT_ACCOUNT
    full_name: str = "Kiosk User"
    description: str = "Restricted kiosk account"
    password: str = ""
    placeholder: str = DEFAULT_PLACEHOLDER
    app_path: Optional[str] = None
    search_paths: Sequence[str] = ()
    skip_account: bool = False
    min_build: int = MINIMUM_OS_BUILD
    service_name: str = PREREQ_SERVICE
    settle_delay: float = DEFAULT_SETTLE_DELAY
    lock_file: Optional[str] = None


@dataclass
class DeploymentOutcome:
    success: bool = False
    failed_step: Optional[DeploymentStep] = None
    error: Optional[Exception] = None
    record: Optional[PolicyApplicationRecord] = None
    report: Optional[ValidationReport] = None
    document: Optional[PolicyDocument] = None
    warnings: List[str] = field(default_factory=list)
    completed: List[DeploymentStep] = field(default_factory=list)


class Orchestrator:
    def __init__(self, host, settings, sleep=time.sleep, log_file=None):
        self.host = host
        self.settings = settings
        self.sleep = sleep
        self.log_file = log_file

    def deploy(self):
        outcome = DeploymentOutcome()
        lock = HostLock(self.settings.lock_file) if self.settings.lock_file else None
        try:
            if lock:
                lock.acquire()
            self._run(outcome)
        except KioskError as e:
            # lock contention, before any step ran
            outcome.error = e
            log_exception("[deploy] Aborted before the first step", e)
        finally:
            if lock:
                lock.release()
        log_outcome(outcome, self.log_file)
        return outcome

    def _run(self, outcome):
        s = self.settings
        steps = (
            (DeploymentStep.PREREQ, self._prereq),
            (DeploymentStep.RESOLVE_APP_PATH, self._resolve_app_path),
            (DeploymentStep.PROVISION_ACCOUNT, self._provision_account),
            (DeploymentStep.APPLY, self._apply),
            (DeploymentStep.VALIDATE, self._validate),
        )
        logger.info(f"[deploy] Deploying kiosk policy {s.policy_path} for '{s.account_name}'")
        for step, func in steps:
            logger.info(f"[deploy] Step {step.value}/{len(DeploymentStep)}: {step.name}")
            try:
                func(outcome)
            except (KioskError, OSError) as e:
                outcome.failed_step = step
                outcome.error = e
                log_exception(f"[deploy] {step.name} failed", e)
                return
            outcome.completed.append(step)

        if not outcome.report.all_critical_passed:
            outcome.failed_step = DeploymentStep.VALIDATE
            outcome.error = KioskError("Critical validation checks failed")
            return
        outcome.completed.append(DeploymentStep.REPORT)
        outcome.success = True

    # ---------- steps ----------
    def _prereq(self, outcome):
        checker = PrerequisiteChecker(self.settings.min_build, self.settings.service_name)
        checker.check(HostCapabilities.probe(self.host, self.settings.service_name))

    def _resolve_app_path(self, outcome):
        s = self.settings
        document = PolicyDocument.load(s.policy_path)
        real_path = self.resolve_app_path()

        if real_path is None:
            outcome.warnings.append(
                f"Application for placeholder '{s.placeholder}' not found; that entry stays unconfigured"
            )
        elif ntpath.normcase(real_path) == ntpath.normcase(s.placeholder):
            logger.info(f"[deploy] Application installed at the placeholder path {real_path}")
        elif not document.has_app_path(s.placeholder) and document.has_app_path(real_path):
            logger.info(f"[deploy] Policy already points at {real_path}")
        else:
            document = document.replace_app_path(s.placeholder, real_path)
            logger.info(f"[deploy] Placeholder replaced with {real_path}")
        outcome.document = document

    def resolve_app_path(self):
        s = self.settings
        return resolve_app_path(self.host, s.placeholder, s.app_path, s.search_paths)

    def _provision_account(self, outcome):
        s = self.settings
        if s.skip_account:
            logger.info("[deploy] Account provisioning skipped")
            return
        AccountProvisioner(self.host).ensure(s.account_name, s.password, s.full_name, s.description)

    def _apply(self, outcome):
        s = self.settings
        applier = PolicyApplier(self.host, s.staging_dir, s.service_name, s.settle_delay, self.sleep)
        outcome.record = applier.apply(outcome.document, s.account_name)
        for correction in outcome.record.corrections:
            logger.info(f"[deploy] Corrected: {correction}")

    def _validate(self, outcome):
        s = self.settings
        validator = PolicyValidator(self.host, s.service_name)
        outcome.report = validator.validate(
            s.account_name,
            expect_policy=True,
            policy_path=s.policy_path,
            app_paths=outcome.document.desktop_app_paths,
        )
        log_validation(outcome.report)
