# log_library.py
# Config loading and loguru setup shared by every entry point

import json
import os
import sys

from loguru import logger

CONFIG_SUFFIX = ".json"
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
FILE_ONLY = "file_only"


def script_dir():
    """Directory of the running script, or CWD when frozen."""
    if getattr(sys, "frozen", False):
        return os.getcwd()
    main = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if main and os.path.exists(main):
        return os.path.dirname(os.path.abspath(main))
    return os.getcwd()


def load_config(default_config, program_name, config_dir=None):
    """Load <program_name>.json, writing defaults out when it does not exist yet."""
    config_dir = config_dir or script_dir()
    path = os.path.join(config_dir, program_name + CONFIG_SUFFIX)
    config = dict(default_config)

    if not os.path.isfile(path):
        try:
            os.makedirs(config_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(default_config, f, indent=4)
        except OSError as e:
            # logging is not configured yet
            print(f"[config] Could not write default config to {path}: {e}", file=sys.stderr)
        config["_config_path"] = path
        return config

    with open(path, "r", encoding="utf-8") as f:
        try:
            stored = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(stored, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    config.update(stored)
    config["_config_path"] = path
    return config


def log_exception(message, error):
    """Full traceback at ERROR, written to the log file only; the console keeps its one-line summary."""
    logger.bind(**{FILE_ONLY: True}).opt(exception=error).error(message)


def log_path_for(config, program_name):
    log_dir = config.get("Log_Dir")
    if not log_dir:
        config_path = config.get("_config_path")
        base = os.path.dirname(config_path) if config_path else script_dir()
        log_dir = os.path.join(base, "logs")
    return os.path.join(log_dir, f"{program_name}.log")


def loguru_logging(config, program_name, program_version):
    """Configure loguru console + rotating file sinks from config and return the logger."""
    level = str(config.get("log_Level", "INFO")).upper()
    logger.remove()

    if int(config.get("Log_Console", 1)):
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True,
                   filter=lambda record: not record["extra"].get(FILE_ONLY))

    log_file = log_path_for(config, program_name)
    try:
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=LOG_FORMAT,
            rotation=config.get("Log_Size", "10 MB"),
            retention=f"{int(config.get('log_Backup', 90))} days",
            encoding="utf-8",
            diagnose=False,
            catch=True,
        )
    except OSError as e:
        logger.warning(f"[log] File logging disabled, cannot open {log_file}: {e}")
        log_file = None

    logger.info(f"[log] {program_name} v{program_version} (log level {level})")
    return logger, log_file
