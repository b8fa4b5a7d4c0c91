import pytest

from kiosk_policy.fakehost import FakeHost

PLACEHOLDER = r"C:\Program Files\ScannerApp\scanner.exe"
REAL_SCANNER = r"C:\Apps\scanner.exe"

POLICY_XML = r"""<?xml version="1.0" encoding="utf-8"?>
<AssignedAccessConfiguration
    xmlns="http://schemas.microsoft.com/AssignedAccess/2017/config"
    xmlns:rs5="http://schemas.microsoft.com/AssignedAccess/201810/config"
    xmlns:v3="http://schemas.microsoft.com/AssignedAccess/2020/config">
  <Profiles>
    <Profile Id="{9A2A490F-10F6-4764-974A-43B19E722C23}">
      <AllAppsList>
        <AllowedApps>
          <App DesktopAppPath="C:\Program Files\ScannerApp\scanner.exe" rs5:AutoLaunch="true" />
          <App DesktopAppPath="C:\Windows\explorer.exe" />
          <App AppUserModelId="Microsoft.WindowsCalculator_8wekyb3d8bbwe!App" />
        </AllowedApps>
      </AllAppsList>
      <rs5:FileExplorerNamespaceRestrictions>
        <rs5:AllowedNamespace Name="Downloads" />
        <v3:AllowRemovableDrives />
      </rs5:FileExplorerNamespaceRestrictions>
      <StartLayout><![CDATA[<LayoutModificationTemplate Version="1" />]]></StartLayout>
      <Taskbar ShowTaskbar="true" />
    </Profile>
  </Profiles>
  <Configs>
    <Config>
      <Account>KioskUser</Account>
      <DefaultProfile Id="{9A2A490F-10F6-4764-974A-43B19E722C23}" />
    </Config>
  </Configs>
</AssignedAccessConfiguration>
"""


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "AssignedAccessConfig.xml"
    path.write_text(POLICY_XML, encoding="utf-8")
    return str(path)


@pytest.fixture
def host():
    return FakeHost(files=[REAL_SCANNER, r"C:\Windows\explorer.exe"])


@pytest.fixture
def kiosk_host(host):
    """Host that already has the kiosk account."""
    host.add_account("KioskUser")
    return host


@pytest.fixture
def sleeps():
    calls = []
    return calls


@pytest.fixture
def no_sleep(sleeps):
    return sleeps.append
