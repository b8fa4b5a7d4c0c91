# document.py
# AssignedAccess configuration XML: load, inspect, patch the placeholder path, serialize

import copy
import ntpath
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from .errors import PlaceholderError, PolicyDocumentError

NS_CONFIG = "http://schemas.microsoft.com/AssignedAccess/2017/config"
NS_RS5 = "http://schemas.microsoft.com/AssignedAccess/201810/config"
NS_V3 = "http://schemas.microsoft.com/AssignedAccess/2020/config"

ET.register_namespace("", NS_CONFIG)
ET.register_namespace("rs5", NS_RS5)
ET.register_namespace("v3", NS_V3)

APP_KIND_DESKTOP = "desktop"
APP_KIND_UWP = "uwp"


def _q(ns, tag):
    return f"{{{ns}}}{tag}"


def normalize_account(name):
    """'.\\KioskUser' / 'PC01\\KioskUser' -> 'kioskuser'."""
    return (name or "").strip().split("\\")[-1].lower()


@dataclass(frozen=True)
class AllowedApp:
    path: str
    kind: str
    auto_launch: bool = False


class PolicyDocument:
    """Read-only view over an AssignedAccess configuration document."""

    def __init__(self, root, source=None):
        self._root = root
        self.source = source
        self._check_structure()

    # ---------------- loading ----------------
    @classmethod
    def from_string(cls, text, source=None):
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise PolicyDocumentError(f"Policy document {source or '<string>'} is not well-formed XML: {e}") from e
        return cls(root, source)

    @classmethod
    def load(cls, path):
        try:
            # PowerShell tends to write a BOM
            with open(path, "r", encoding="utf-8-sig") as f:
                text = f.read()
        except OSError as e:
            raise PolicyDocumentError(f"Cannot read policy document {path}: {e}") from e
        return cls.from_string(text, source=path)

    def _check_structure(self):
        where = self.source or "<string>"
        if self._root.tag != _q(NS_CONFIG, "AssignedAccessConfiguration"):
            raise PolicyDocumentError(f"{where}: root element must be AssignedAccessConfiguration, got {self._root.tag}")

        profile_ids = set()
        for profile in self._root.iter(_q(NS_CONFIG, "Profile")):
            profile_id = profile.get("Id")
            if not profile_id:
                raise PolicyDocumentError(f"{where}: Profile without Id")
            profile_ids.add(profile_id.upper())
        if not profile_ids:
            raise PolicyDocumentError(f"{where}: no Profile defined")

        configs = list(self._root.iter(_q(NS_CONFIG, "Config")))
        if not configs:
            raise PolicyDocumentError(f"{where}: no Config defined")
        for config in configs:
            default_profile = config.find(_q(NS_CONFIG, "DefaultProfile"))
            if default_profile is None or (default_profile.get("Id") or "").upper() not in profile_ids:
                raise PolicyDocumentError(f"{where}: Config references an unknown profile")

        if self.account is None:
            raise PolicyDocumentError(f"{where}: no <Account> element in Configs")

    # ---------------- fields ----------------
    @property
    def account(self):
        element = self._root.find(f".//{_q(NS_CONFIG, 'Config')}/{_q(NS_CONFIG, 'Account')}")
        if element is None or not (element.text or "").strip():
            return None
        return element.text.strip()

    def account_matches(self, name):
        return normalize_account(self.account) == normalize_account(name)

    def _app_elements(self):
        return self._root.iter(_q(NS_CONFIG, "App"))

    @property
    def apps(self):
        apps = []
        for element in self._app_elements():
            auto_launch = (element.get(_q(NS_RS5, "AutoLaunch")) or "").lower() == "true"
            if element.get("DesktopAppPath"):
                apps.append(AllowedApp(element.get("DesktopAppPath"), APP_KIND_DESKTOP, auto_launch))
            elif element.get("AppUserModelId"):
                apps.append(AllowedApp(element.get("AppUserModelId"), APP_KIND_UWP, auto_launch))
        return tuple(apps)

    @property
    def desktop_app_paths(self):
        return tuple(app.path for app in self.apps if app.kind == APP_KIND_DESKTOP)

    @property
    def namespaces(self):
        names = {
            element.get("Name")
            for element in self._root.iter(_q(NS_RS5, "AllowedNamespace"))
            if element.get("Name")
        }
        if self._root.find(f".//{_q(NS_V3, 'AllowRemovableDrives')}") is not None:
            names.add("RemovableDrives")
        return frozenset(names)

    @property
    def start_layout(self):
        element = self._root.find(f".//{_q(NS_CONFIG, 'StartLayout')}")
        if element is None or not (element.text or "").strip():
            return None
        return element.text

    # ---------------- patching ----------------
    def replace_app_path(self, placeholder, real_path):
        """Return a copy with the single App whose DesktopAppPath equals placeholder pointing at real_path."""
        root = copy.deepcopy(self._root)
        wanted = ntpath.normcase(placeholder)
        matches = [
            element for element in root.iter(_q(NS_CONFIG, "App"))
            if ntpath.normcase(element.get("DesktopAppPath") or "") == wanted
        ]
        if len(matches) != 1:
            raise PlaceholderError(placeholder, len(matches))
        matches[0].set("DesktopAppPath", real_path)
        return PolicyDocument(root, self.source)

    def has_app_path(self, path):
        wanted = ntpath.normcase(path)
        return any(ntpath.normcase(p) == wanted for p in self.desktop_app_paths)

    def to_xml(self):
        return ET.tostring(self._root, encoding="unicode")

    def write(self, path):
        with open(path, "w", encoding="utf-8") as f:
            f.write('<?xml version="1.0" encoding="utf-8"?>\n')
            f.write(self.to_xml())
