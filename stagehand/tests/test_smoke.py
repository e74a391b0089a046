import json

import pytest

from stagehand.appium.bridge import AppiumConfig
from stagehand.appium.smoke import CapabilitiesFileError, load_capabilities_file, run_native_smoke_test
from stagehand.tests.conftest import PNG_BASE64, PNG_BYTES


def _route_smoke(fake_session):
    fake_session.add("POST", "/session", {"value": {"sessionId": "smoke"}})
    fake_session.add("GET", "/session/smoke/screenshot", {"value": PNG_BASE64})
    fake_session.add("GET", "/session/smoke/source", {"value": "<hierarchy/>"})
    fake_session.add("DELETE", "/session/smoke", {"value": None})


def test_smoke_writes_artifacts(fake_session, client, tmp_path):
    _route_smoke(fake_session)

    result = run_native_smoke_test(config=AppiumConfig(), artifacts_dir=str(tmp_path), client=client)

    assert result.session_id == "smoke"
    assert result.screenshot_path.read_bytes() == PNG_BYTES
    assert result.page_source_path.read_text(encoding="utf-8") == "<hierarchy/>"
    assert fake_session.paths("DELETE") == ["/session/smoke"]
    assert client.session_id is None


def test_smoke_capabilities_file_wins(fake_session, client, tmp_path):
    _route_smoke(fake_session)
    caps = {"capabilities": {"alwaysMatch": {"platformName": "iOS"}, "firstMatch": [{}]}}
    caps_path = tmp_path / "caps.json"
    caps_path.write_text(json.dumps(caps), encoding="utf-8")

    run_native_smoke_test(
        config=AppiumConfig(),
        capabilities_json_path=str(caps_path),
        artifacts_dir=str(tmp_path / "out"),
        client=client,
    )

    assert fake_session.calls[0]["json"] == caps


def test_smoke_capabilities_file_requires_key(client, tmp_path):
    caps_path = tmp_path / "caps.json"
    caps_path.write_text('{"alwaysMatch": {}}', encoding="utf-8")
    with pytest.raises(CapabilitiesFileError, match="capabilities"):
        run_native_smoke_test(capabilities_json_path=str(caps_path), client=client)


def test_smoke_deletes_session_on_failure(fake_session, client, tmp_path):
    """Test that the session is torn down when a capture fails."""
    fake_session.add("POST", "/session", {"value": {"sessionId": "smoke"}})
    fake_session.add("DELETE", "/session/smoke", {"value": None})

    with pytest.raises(RuntimeError):
        run_native_smoke_test(artifacts_dir=str(tmp_path), client=client)
    assert fake_session.paths("DELETE") == ["/session/smoke"]


def test_smoke_default_artifacts_dir(fake_session, client, tmp_path, monkeypatch):
    _route_smoke(fake_session)
    monkeypatch.setenv("STAGEHAND_ARTIFACTS_DIR", str(tmp_path / "env-artifacts"))

    result = run_native_smoke_test(client=client)

    assert result.screenshot_path.parent == (tmp_path / "env-artifacts").resolve()


def test_load_capabilities_file(tmp_path):
    path = tmp_path / "caps.json"
    path.write_text('{"capabilities": {"alwaysMatch": {"platformName": "Android"}}}', encoding="utf-8")
    assert load_capabilities_file(path)["capabilities"]["alwaysMatch"] == {"platformName": "Android"}


@pytest.mark.parametrize(
    "content,match",
    [
        ("{not json", "not valid JSON"),
        ("[1, 2]", "JSON object"),
        ('{"alwaysMatch": {}}', "no 'capabilities' key"),
    ],
)
def test_load_capabilities_file_rejects_bad_content(tmp_path, content, match):
    path = tmp_path / "caps.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(CapabilitiesFileError, match=match):
        load_capabilities_file(path)


def test_load_capabilities_file_missing_or_directory(tmp_path):
    with pytest.raises(FileNotFoundError, match="missing"):
        load_capabilities_file(tmp_path / "missing.json")
    with pytest.raises(FileNotFoundError, match="a directory"):
        load_capabilities_file(tmp_path)
