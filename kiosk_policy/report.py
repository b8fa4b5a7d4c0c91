# report.py
# Operator-facing output: validation checklist, outcome summary, troubleshooting hints

from loguru import logger

from .models import CheckStatus

TROUBLESHOOTING = {
    "PREREQ": [
        "Run the deployer from an elevated prompt (Run as Administrator).",
        "Multi-app kiosk needs Windows 10 1709 (build 16299) or newer; raise or lower Min_OS_Build only if you know the target supports it.",
        "Check that the Application Identity service exists: sc.exe query AppIDSvc",
    ],
    "RESOLVE_APP_PATH": [
        "Verify the policy XML exists and is well-formed (open it in a browser or XML editor).",
        "The placeholder path must appear in exactly one <App DesktopAppPath=...> entry.",
        "Pass the real executable with --app-path or list it in App_Search_Paths.",
    ],
    "PROVISION_ACCOUNT": [
        "Check the account in lusrmgr.msc; kiosk accounts must not be in Administrators.",
        "If Account_Password is set, make sure Secret_Key / KIOSK_SECRET_KEY matches the key it was encrypted with.",
        "Use --skip-account when the account is managed elsewhere.",
    ],
    "APPLY": [
        "The <Account> in the policy XML must match --account.",
        "Schema errors: compare the XML against the AssignedAccess 2017/201810 schemas.",
        "The WMI bridge must run as SYSTEM on some builds; see the staged instructions file if one was written.",
    ],
    "VALIDATE": [
        "Re-run the validate command after signing out and back in.",
        "Start the Application Identity service: sc.exe start AppIDSvc",
        "Check Event Viewer > Applications and Services Logs > Microsoft > Windows > AssignedAccess.",
    ],
    "REMOVE": [
        "Sign the kiosk account out (or reboot) before deleting it.",
        "Run remove again; every step is safe to repeat.",
    ],
}

_LEVEL_FOR_STATUS = {
    CheckStatus.PASS: "SUCCESS",
    CheckStatus.FAIL: "ERROR",
    CheckStatus.WARNING: "WARNING",
    CheckStatus.INFO: "INFO",
}


def log_validation(report):
    for check in report:
        logger.log(_LEVEL_FOR_STATUS[check.status], f"[validate] [{check.status.value}] {check.name}: {check.message}")
    if report.all_critical_passed:
        logger.success("[validate] All critical checks passed")
    else:
        logger.error("[validate] One or more critical checks failed")


def log_troubleshooting(step_name):
    hints = TROUBLESHOOTING.get(step_name)
    if not hints:
        return
    logger.info("[help] Troubleshooting:")
    for hint in hints:
        logger.info(f"[help]   - {hint}")


def log_failure(step_name, error, log_file=None):
    where = f" at step {step_name}" if step_name else ""
    logger.error(f"[deploy] FAILED{where}: {error}")
    if log_file:
        logger.error(f"[deploy] Details in log: {log_file}")
    log_troubleshooting(step_name)


def log_outcome(outcome, log_file=None):
    for warning in outcome.warnings:
        logger.warning(f"[deploy] {warning}")
    if not outcome.success:
        step_name = outcome.failed_step.name if outcome.failed_step else None
        log_failure(step_name, outcome.error, log_file)
        return
    record = outcome.record
    if record is not None and record.needs_manual_follow_up:
        logger.warning(
            f"[deploy] Policy STAGED ({record.staged_reason}), manual application required: "
            + ", ".join(record.artifacts)
        )
    else:
        logger.success("[deploy] Kiosk deployment complete")
    if log_file:
        logger.info(f"[deploy] Log: {log_file}")


def log_removal(summary):
    for step, message in summary.failed_steps:
        logger.warning(f"[remove] {step}: {message}")
    logger.info(f"[remove] Changed steps: {', '.join(summary.mutated_steps) or 'none'}")
