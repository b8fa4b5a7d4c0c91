import pytest

from kiosk_policy.document import APP_KIND_DESKTOP, APP_KIND_UWP, PolicyDocument, normalize_account
from kiosk_policy.errors import PlaceholderError, PolicyDocumentError

from tests.conftest import PLACEHOLDER, POLICY_XML, REAL_SCANNER


def test_load_reads_fields(policy_file):
    doc = PolicyDocument.load(policy_file)

    assert doc.account == "KioskUser"
    assert [a.kind for a in doc.apps] == [APP_KIND_DESKTOP, APP_KIND_DESKTOP, APP_KIND_UWP]
    assert doc.apps[0].path == PLACEHOLDER
    assert doc.apps[0].auto_launch is True
    assert doc.apps[1].auto_launch is False
    assert doc.namespaces == frozenset({"Downloads", "RemovableDrives"})
    assert "LayoutModificationTemplate" in doc.start_layout


def test_replace_placeholder_changes_only_that_entry():
    doc = PolicyDocument.from_string(POLICY_XML)

    patched = doc.replace_app_path(PLACEHOLDER, REAL_SCANNER)

    assert patched.apps[0].path == REAL_SCANNER
    assert patched.apps[0].auto_launch is True
    assert patched.apps[1:] == doc.apps[1:]
    assert patched.namespaces == doc.namespaces
    assert patched.start_layout == doc.start_layout
    assert patched.account == doc.account
    # original untouched
    assert doc.apps[0].path == PLACEHOLDER


def test_replace_placeholder_is_case_insensitive():
    doc = PolicyDocument.from_string(POLICY_XML)
    patched = doc.replace_app_path(PLACEHOLDER.upper(), REAL_SCANNER)
    assert patched.apps[0].path == REAL_SCANNER


def test_replace_placeholder_without_match_fails_loudly():
    doc = PolicyDocument.from_string(POLICY_XML)
    with pytest.raises(PlaceholderError) as exc:
        doc.replace_app_path(r"C:\nothing\here.exe", REAL_SCANNER)
    assert exc.value.matches == 0


def test_replace_placeholder_with_duplicates_fails_loudly():
    duplicated = POLICY_XML.replace(
        r'<App DesktopAppPath="C:\Windows\explorer.exe" />',
        r'<App DesktopAppPath="C:\Program Files\ScannerApp\scanner.exe" />',
    )
    doc = PolicyDocument.from_string(duplicated)
    with pytest.raises(PlaceholderError) as exc:
        doc.replace_app_path(PLACEHOLDER, REAL_SCANNER)
    assert exc.value.matches == 2


def test_patched_document_round_trips_through_xml():
    doc = PolicyDocument.from_string(POLICY_XML).replace_app_path(PLACEHOLDER, REAL_SCANNER)

    again = PolicyDocument.from_string(doc.to_xml())

    assert again.apps == doc.apps
    assert again.account == "KioskUser"
    assert 'xmlns:rs5="http://schemas.microsoft.com/AssignedAccess/201810/config"' in doc.to_xml()


def test_write_produces_loadable_file(tmp_path):
    doc = PolicyDocument.from_string(POLICY_XML)
    target = tmp_path / "out.xml"
    doc.write(str(target))
    assert PolicyDocument.load(str(target)).apps == doc.apps


def test_malformed_xml_is_rejected():
    with pytest.raises(PolicyDocumentError, match="not well-formed"):
        PolicyDocument.from_string("<AssignedAccessConfiguration>")


def test_missing_file_is_rejected(tmp_path):
    with pytest.raises(PolicyDocumentError, match="Cannot read"):
        PolicyDocument.load(str(tmp_path / "missing.xml"))


def test_wrong_root_is_rejected():
    with pytest.raises(PolicyDocumentError, match="root element"):
        PolicyDocument.from_string("<Something />")


def test_unknown_default_profile_is_rejected():
    broken = POLICY_XML.replace('<DefaultProfile Id="{9A2A490F', '<DefaultProfile Id="{00000000')
    with pytest.raises(PolicyDocumentError, match="unknown profile"):
        PolicyDocument.from_string(broken)


def test_missing_account_is_rejected():
    broken = POLICY_XML.replace("<Account>KioskUser</Account>", "")
    with pytest.raises(PolicyDocumentError, match="Account"):
        PolicyDocument.from_string(broken)


@pytest.mark.parametrize("name", ["KioskUser", "kioskuser", r".\KioskUser", r"PC-01\KIOSKUSER"])
def test_account_matching_ignores_case_and_machine_prefix(name):
    doc = PolicyDocument.from_string(POLICY_XML)
    assert doc.account_matches(name)


def test_normalize_account():
    assert normalize_account(r".\Kiosk") == "kiosk"
    assert normalize_account(None) == ""
