# winhost.py
# HostControlPlane backed by a live Windows 10/11 machine
# Dependencies: pywin32, psutil. Run as Administrator.

import contextlib
import ctypes
import html
import os
import subprocess
import sys
import tempfile

import psutil
import pywintypes
import win32api
import win32con
import win32net
import win32netcon
import win32security
import win32serviceutil
from loguru import logger

from .document import normalize_account
from .errors import BridgeUnavailable, EditionUnsupported, HostError, SubmissionRejected
from .host import ADMINISTRATORS_GROUP, HostControlPlane, ManagedAccount, ServiceState, USERS_GROUP

MDM_NAMESPACE = r"root\cimv2\mdm\dmmap"
MDM_CLASS = "MDM_AssignedAccess"
ASSIGNED_ACCESS_CONFIGS_KEY = r"SOFTWARE\Microsoft\Windows\AssignedAccessConfiguration\Configs"
EDITION_KEY = r"SOFTWARE\Microsoft\Windows NT\CurrentVersion"

SID_ADMINISTRATORS = "S-1-5-32-544"
SID_USERS = "S-1-5-32-545"

NERR_USER_NOT_FOUND = 2221
ERROR_MEMBER_IN_ALIAS = 1378
ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_NOT_ACTIVE = 1062

# substrings in PowerShell / WMI error output
_BRIDGE_MISSING_MARKERS = ("invalid class", "invalid namespace", "0x80041010", "0x8004100e",
                           "access denied", "0x80041003", "instance not found")
_EDITION_MARKERS = ("not supported", "0x80070032", "0x8007000d")


# ---------- Helper: admin check & elevation ----------
def is_admin():
    try:
        return ctypes.windll.shell32.IsUserAnAdmin() != 0
    except Exception:
        return False


def relaunch_elevated(argv=None):
    """Start this program again through the UAC 'runas' verb. Returns False if that failed."""
    argv = list(sys.argv if argv is None else argv)
    params = " ".join(f'"{a}"' for a in argv)
    hinst = ctypes.windll.shell32.ShellExecuteW(
        None, "runas", sys.executable, params, None, win32con.SW_SHOWNORMAL
    )
    if hinst <= 32:
        logger.error(f"[host] ShellExecuteW failed to elevate (Code: {hinst})")
        return False
    logger.warning("[host] Relaunched as Administrator. Exiting non-elevated instance.")
    return True


@contextlib.contextmanager
def win32_errors(action):
    try:
        yield
    except pywintypes.error as e:
        raise HostError(f"{action} failed: {e.strerror} ({e.winerror})") from e


class HiddenProcess:
    """subprocess flags that keep PowerShell from flashing a console window."""

    def __init__(self):
        self.startupinfo = subprocess.STARTUPINFO()
        self.startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        self.startupinfo.wShowWindow = subprocess.SW_HIDE
        self.creationflags = subprocess.CREATE_NO_WINDOW


def run(cmd, check=True):
    """Run a command list, log its output, raise HostError on failure when check is set."""
    hp = HiddenProcess()
    logger.debug(f"[host] RUN: {' '.join(cmd[:4])}...")
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, encoding="utf-8", errors="replace",
                           startupinfo=hp.startupinfo, creationflags=hp.creationflags)
    except OSError as e:
        raise HostError(f"Cannot run {cmd[0]}: {e}") from e
    if r.stderr:
        logger.debug(f"[host] stderr: {r.stderr.strip()}")
    if check and r.returncode != 0:
        raise HostError(f"{cmd[0]} failed rc={r.returncode}: {(r.stderr or r.stdout).strip()}")
    return r


def ps(script, check=True):
    return run(["powershell.exe", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass",
                "-Command", "$ErrorActionPreference = 'Stop'; " + script], check=check)


def _ps_quote(value):
    return "'" + value.replace("'", "''") + "'"


def classify_bridge_error(detail):
    """Map WMI bridge error output onto the apply error kinds."""
    text = detail.lower()
    if any(marker in text for marker in _BRIDGE_MISSING_MARKERS):
        return BridgeUnavailable(detail)
    if any(marker in text for marker in _EDITION_MARKERS):
        return EditionUnsupported(detail)
    return SubmissionRejected(detail)


class WindowsHost(HostControlPlane):
    def __init__(self):
        self._group_names = None

    # ---------- identity / platform ----------
    def is_elevated(self):
        return is_admin()

    def os_build(self):
        return sys.getwindowsversion().build

    def edition(self):
        try:
            key = win32api.RegOpenKeyEx(win32con.HKEY_LOCAL_MACHINE, EDITION_KEY, 0, win32con.KEY_READ)
            try:
                return win32api.RegQueryValueEx(key, "EditionID")[0]
            finally:
                win32api.RegCloseKey(key)
        except pywintypes.error:
            return "Unknown"

    # ---------- services ----------
    def service_state(self, name):
        try:
            info = psutil.win_service_get(name).as_dict()
        except psutil.NoSuchProcess:
            return None
        except psutil.Error as e:
            raise HostError(f"Cannot query service {name}: {e}") from e
        return ServiceState(name, info["status"] == "running", info["start_type"] == "automatic",
                            info["start_type"] == "disabled")

    def start_service(self, name):
        try:
            win32serviceutil.StartService(name)
        except pywintypes.error as e:
            if e.winerror != ERROR_SERVICE_ALREADY_RUNNING:
                raise HostError(f"Starting {name} failed: {e.strerror}") from e

    def stop_service(self, name):
        try:
            win32serviceutil.StopService(name)
        except pywintypes.error as e:
            if e.winerror != ERROR_SERVICE_NOT_ACTIVE:
                raise HostError(f"Stopping {name} failed: {e.strerror}") from e

    def set_service_auto_start(self, name, auto_start):
        # AppIDSvc is a protected service, the SCM API refuses; sc.exe does not
        run(["sc.exe", "config", name, "start=", "auto" if auto_start else "demand"])

    def disable_service(self, name):
        run(["sc.exe", "config", name, "start=", "disabled"])

    # ---------- accounts ----------
    def _builtin_groups(self):
        """Localized names of BUILTIN\\Administrators and BUILTIN\\Users."""
        if self._group_names is None:
            names = {}
            for sid, canonical in ((SID_ADMINISTRATORS, ADMINISTRATORS_GROUP), (SID_USERS, USERS_GROUP)):
                with win32_errors(f"Resolving {sid}"):
                    local, _, _ = win32security.LookupAccountSid(None, win32security.ConvertStringSidToSid(sid))
                names[canonical] = local
            self._group_names = names
        return self._group_names

    def _canonical_group(self, local_name):
        for canonical, local in self._builtin_groups().items():
            if local.lower() == local_name.lower():
                return canonical
        return local_name

    def get_account(self, name):
        try:
            info = win32net.NetUserGetInfo(None, name, 2)
        except pywintypes.error as e:
            if e.winerror == NERR_USER_NOT_FOUND:
                return None
            raise HostError(f"Looking up account {name} failed: {e.strerror}") from e
        with win32_errors(f"Reading groups of {name}"):
            groups = [self._canonical_group(g) for g in win32net.NetUserGetLocalGroups(None, name)]
        return ManagedAccount(
            name=info["name"],
            enabled=not (info["flags"] & win32netcon.UF_ACCOUNTDISABLE),
            groups=groups,
            full_name=info.get("full_name", ""),
            description=info.get("comment", ""),
        )

    def create_account(self, name, password, full_name, description):
        flags = win32netcon.UF_SCRIPT | win32netcon.UF_DONT_EXPIRE_PASSWD
        if not password:
            flags |= win32netcon.UF_PASSWD_NOTREQD
        user_info = {
            "name": name,
            "password": password or "",
            "priv": win32netcon.USER_PRIV_USER,
            "comment": description,
            "flags": flags,
        }
        with win32_errors(f"Creating account {name}"):
            win32net.NetUserAdd(None, 1, user_info)
            if full_name:
                win32net.NetUserSetInfo(None, name, 1011, {"full_name": full_name})

    def enable_account(self, name):
        with win32_errors(f"Enabling account {name}"):
            info = win32net.NetUserGetInfo(None, name, 1)
            win32net.NetUserSetInfo(None, name, 1008, {"flags": info["flags"] & ~win32netcon.UF_ACCOUNTDISABLE})

    def add_to_group(self, name, group):
        local = self._builtin_groups().get(group, group)
        try:
            win32net.NetLocalGroupAddMembers(None, local, 3, [{"domainandname": name}])
        except pywintypes.error as e:
            if e.winerror != ERROR_MEMBER_IN_ALIAS:
                raise HostError(f"Adding {name} to {local} failed: {e.strerror}") from e

    def remove_from_group(self, name, group):
        local = self._builtin_groups().get(group, group)
        with win32_errors(f"Removing {name} from {local}"):
            win32net.NetLocalGroupDelMembers(None, local, [name])

    def delete_account(self, name):
        with win32_errors(f"Deleting account {name}"):
            win32net.NetUserDel(None, name)

    def has_active_session(self, name):
        wanted = normalize_account(name)
        return any(normalize_account(u.name) == wanted for u in psutil.users())

    # ---------- assigned access ----------
    def bridge_available(self):
        r = ps(f"Get-CimClass -Namespace {_ps_quote(MDM_NAMESPACE)} -ClassName {MDM_CLASS} | Out-Null", check=False)
        return r.returncode == 0

    def query_policy(self):
        r = ps(
            f"(Get-CimInstance -Namespace {_ps_quote(MDM_NAMESPACE)} -ClassName {MDM_CLASS}).Configuration",
            check=False,
        )
        if r.returncode != 0:
            raise classify_bridge_error((r.stderr or r.stdout).strip())
        text = (r.stdout or "").strip()
        return html.unescape(text) if text else None

    def query_policy_lowlevel(self):
        try:
            key = win32api.RegOpenKeyEx(win32con.HKEY_LOCAL_MACHINE, ASSIGNED_ACCESS_CONFIGS_KEY, 0,
                                        win32con.KEY_READ | win32con.KEY_WOW64_64KEY)
        except pywintypes.error:
            return False
        try:
            return win32api.RegQueryInfoKey(key)[0] > 0
        finally:
            win32api.RegCloseKey(key)

    def _set_configuration(self, value_expr):
        script = (
            f"$obj = Get-CimInstance -Namespace {_ps_quote(MDM_NAMESPACE)} -ClassName {MDM_CLASS}; "
            "if (-not $obj) { throw 'MDM_AssignedAccess instance not found' }; "
            f"$obj.Configuration = {value_expr}; "
            "Set-CimInstance -CimInstance $obj"
        )
        r = ps(script, check=False)
        if r.returncode != 0:
            raise classify_bridge_error((r.stderr or r.stdout).strip())

    def submit_policy(self, xml_text):
        fd, path = tempfile.mkstemp(suffix=".xml", prefix="assignedaccess_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(xml_text)
            self._set_configuration(
                f"[System.Net.WebUtility]::HtmlEncode((Get-Content -Raw -LiteralPath {_ps_quote(path)}))"
            )
        finally:
            os.remove(path)

    def clear_policy(self):
        self._set_configuration("$null")

    # ---------- secondary enforcement ----------
    def get_secondary_policy(self):
        r = ps("Get-AppLockerPolicy -Local -Xml")
        return r.stdout.strip() or None

    def set_secondary_policy(self, xml_text):
        fd, path = tempfile.mkstemp(suffix=".xml", prefix="applocker_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(xml_text)
            ps(f"Set-AppLockerPolicy -XmlPolicy {_ps_quote(path)}")
        finally:
            os.remove(path)

    # ---------- filesystem ----------
    def path_exists(self, path):
        return os.path.exists(os.path.expandvars(path))
