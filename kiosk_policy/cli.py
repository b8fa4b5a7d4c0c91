# cli.py
# Command line entry points: deploy / validate / remove / encrypt-password

import argparse
import getpass
import os
import sys
import tempfile

from loguru import logger

from . import Program_Name, Program_Version
from .confirm import default_confirmer
from .crypto import account_password, encrypt_data, generate_key, resolve_key
from .document import PolicyDocument
from .errors import KioskError, RemovalCancelled
from .hostlock import HostLock
from .log_library import load_config, log_exception, loguru_logging, script_dir
from .orchestrator import (
    DEFAULT_ACCOUNT,
    DEFAULT_PLACEHOLDER,
    DeploySettings,
    Orchestrator,
    deployed_app_paths,
    resolve_app_path,
)
from .prereq import MINIMUM_OS_BUILD, PREREQ_SERVICE
from .remover import PolicyRemover
from .report import log_failure, log_removal, log_validation
from .validator import PolicyValidator

POLICY_FILE_NAME = "AssignedAccessConfig.xml"

default_config = {
    "Account_Name": DEFAULT_ACCOUNT,
    "Account_Full_Name": "Kiosk User",
    "Account_Description": "Restricted kiosk account",
    "Account_Password": "",  # Fernet token, see encrypt-password
    "Secret_Key": "",
    "Policy_Path": "",
    "App_Placeholder": DEFAULT_PLACEHOLDER,
    "App_Search_Paths": [r"C:\Apps\scanner.exe"],
    "Min_OS_Build": MINIMUM_OS_BUILD,
    "Prereq_Service": PREREQ_SERVICE,
    "Service_Settle_Delay": 3,
    "Staging_Dir": "",
    "Lock_File": "",
    "log_Level": "INFO",
    "Log_Console": 1,
    "log_Backup": 90,
    "Log_Size": "10 MB",
}


def build_parser():
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--account", help="Kiosk account name (default: Account_Name from config)")
    common.add_argument("--policy", help=f"AssignedAccess XML (default: {POLICY_FILE_NAME} next to the script)")
    common.add_argument("--config-dir", help="Directory holding Kiosk_Deployer.json and logs/")
    common.add_argument("--simulate", action="store_true", help="Run against an in-memory host, change nothing")
    common.add_argument("--non-interactive", action="store_true", help="Never prompt")
    common.add_argument("--elevate", action="store_true", help="Relaunch through UAC when not elevated")

    parser = argparse.ArgumentParser(prog=Program_Name, description="Windows multi-app kiosk deployment")
    parser.add_argument("--version", action="version", version=f"{Program_Name} {Program_Version}")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", parents=[common], help="Create the account and apply the kiosk policy")
    deploy.add_argument("--app-path", help="Real path of the application behind the placeholder entry")
    deploy.add_argument("--skip-account", action="store_true", help="Do not create the account")

    validate = sub.add_parser("validate", parents=[common], help="Report the kiosk state of this host")
    validate.add_argument("--expect-absent", action="store_true", help="Check a host after removal")
    validate.add_argument("--app-path", help="Real path of the application behind the placeholder entry")

    remove = sub.add_parser("remove", parents=[common], help="Remove the kiosk policy")
    remove.add_argument("--remove-account", action="store_true", help="Also delete the kiosk account")
    remove.add_argument("--clear-applocker", action="store_true",
                        help="Reset every AppLocker rule collection to NotConfigured")
    remove.add_argument("--confirm-dialog", action="store_true", help="Ask for confirmation in a dialog box")

    encrypt = sub.add_parser("encrypt-password", parents=[common], help="Encrypt the kiosk account password")
    encrypt.add_argument("--password", help="Password to encrypt (prompted when omitted)")
    return parser


def make_host(args):
    if args.simulate:
        from .fakehost import FakeHost
        return FakeHost()
    if sys.platform != "win32":
        raise KioskError("A live host needs Windows; use --simulate elsewhere")
    from .winhost import WindowsHost
    return WindowsHost()


def resolve_paths(args, config, config_dir):
    policy_path = args.policy or config.get("Policy_Path") or os.path.join(script_dir(), POLICY_FILE_NAME)
    staging_dir = config.get("Staging_Dir") or os.path.join(config_dir, "staged")
    lock_file = config.get("Lock_File") or os.path.join(
        os.environ.get("ProgramData", tempfile.gettempdir()), Program_Name, "deploy.lock"
    )
    return os.path.abspath(policy_path), staging_dir, lock_file


def cmd_deploy(args, config, host, paths, log_file):
    policy_path, staging_dir, lock_file = paths
    password = "" if args.skip_account else account_password(config)
    settings = DeploySettings(
        policy_path=policy_path,
        staging_dir=staging_dir,
        account_name=args.account or config["Account_Name"],
        full_name=config["Account_Full_Name"],
        description=config["Account_Description"],
        password=password,
        placeholder=config["App_Placeholder"],
        app_path=args.app_path,
        search_paths=config.get("App_Search_Paths") or (),
        skip_account=args.skip_account,
        min_build=int(config["Min_OS_Build"]),
        service_name=config["Prereq_Service"],
        settle_delay=0 if args.simulate else float(config["Service_Settle_Delay"]),
        lock_file=lock_file,
    )
    outcome = Orchestrator(host, settings, log_file=log_file).deploy()
    return 0 if outcome.success else 1


def cmd_validate(args, config, host, paths, log_file):
    policy_path = paths[0]
    app_paths = ()
    try:
        document = PolicyDocument.load(policy_path)
        real_path = resolve_app_path(host, config["App_Placeholder"], args.app_path,
                                     config.get("App_Search_Paths") or ())
        app_paths = deployed_app_paths(document, config["App_Placeholder"], real_path)
    except KioskError as e:
        logger.warning(f"[validate] Cannot read policy document, skipping application checks: {e}")
    report = PolicyValidator(host, config["Prereq_Service"]).validate(
        args.account or config["Account_Name"],
        expect_policy=not args.expect_absent,
        policy_path=policy_path,
        app_paths=app_paths,
    )
    log_validation(report)
    return 0 if report.all_critical_passed else 1


def cmd_remove(args, config, host, paths, log_file):
    lock_file = paths[2]
    account = args.account or config["Account_Name"]
    remover = PolicyRemover(host, default_confirmer(args.non_interactive, args.confirm_dialog),
                            config["Prereq_Service"])
    try:
        with HostLock(lock_file):
            summary = remover.remove(account, remove_account=args.remove_account,
                                     clear_secondary=args.clear_applocker)
    except RemovalCancelled as e:
        logger.error(f"[remove] {e}")
        return 1
    except KioskError as e:
        log_exception("[remove] Removal failed", e)
        log_failure("REMOVE", e, log_file)
        return 1
    log_removal(summary)
    return 0


def cmd_encrypt_password(args, config, host, paths, log_file):
    key = resolve_key(config)
    if not key:
        key = generate_key()
        logger.warning("[crypto] No Secret_Key configured, generated one. Store it in Secret_Key or KIOSK_SECRET_KEY:")
        print(key)
    password = args.password
    if password is None:
        if args.non_interactive:
            logger.error("[crypto] --password is required with --non-interactive")
            return 1
        password = getpass.getpass("Kiosk account password: ")
    print(encrypt_data(password, key))
    logger.info("[crypto] Put the token above into Account_Password")
    return 0


COMMANDS = {
    "deploy": cmd_deploy,
    "validate": cmd_validate,
    "remove": cmd_remove,
    "encrypt-password": cmd_encrypt_password,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    config_dir = args.config_dir or script_dir()
    try:
        config = load_config(default_config, Program_Name, config_dir)
    except ValueError as e:
        print(f"[config] {e}", file=sys.stderr)
        return 1
    _, log_file = loguru_logging(config, Program_Name, Program_Version)

    try:
        host = None if args.command == "encrypt-password" else make_host(args)
        if args.elevate and host is not None and not args.simulate and not host.is_elevated():
            from .winhost import relaunch_elevated
            return 0 if relaunch_elevated() else 1
        paths = resolve_paths(args, config, config_dir)
        return COMMANDS[args.command](args, config, host, paths, log_file)
    except (KioskError, ValueError) as e:
        log_exception(f"[{Program_Name}] {args.command} failed", e)
        logger.error(f"[{Program_Name}] {e}")
        if log_file:
            logger.error(f"[{Program_Name}] Details in log: {log_file}")
        return 1
