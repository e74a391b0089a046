"""Tests for the native app helper."""
import time

import pytest

from stagehand.appium.bridge import AppiumConfig
from stagehand.appium.client import AppiumHTTPError
from stagehand.appium.native_app import ElementNotFoundError, NativeAppHelper, create_native_app_helper
from stagehand.tests.conftest import PNG_BASE64, PNG_BYTES, element


@pytest.fixture
def helper(client):
    return NativeAppHelper(AppiumConfig(bundle_id="com.example.app"), client=client)


@pytest.fixture
def ready_helper(fake_session, helper):
    """A helper with an initialized session 'abc'."""
    fake_session.add("GET", "/status", {"value": {"ready": True}})
    fake_session.add("POST", "/session", {"value": {"sessionId": "abc"}})
    fake_session.add("DELETE", "/session/abc", {"value": None})
    helper.initialize()
    return helper


def test_dict_config_merges_onto_env_defaults(monkeypatch, client):
    """Test that a partial dict keeps the env-derived defaults."""
    monkeypatch.setenv("ANDROID_BUNDLE_ID", "com.env.app")
    helper = create_native_app_helper({"device_name": "Pixel 7"}, client=client)

    assert helper.config.device_name == "Pixel 7"
    assert helper.config.bundle_id == "com.env.app"


def test_initialize_creates_session(fake_session, ready_helper):
    assert ready_helper.session_id == "abc"
    create_call = [c for c in fake_session.calls if c["path"] == "/session"][0]
    assert create_call["json"]["capabilities"]["alwaysMatch"]["appium:bundleId"] == "com.example.app"


def test_initialize_asks_for_server_when_unreachable(fake_session, helper, monkeypatch, capsys):
    """Test that an unreachable server is reported and the session call still surfaces its error."""
    monkeypatch.setattr(NativeAppHelper, "server_start_wait_s", 0.0)
    fake_session.add("GET", "/status", {"value": {}}, status=503)
    fake_session.add("POST", "/session", {"value": {"error": "session not created"}}, status=500)

    with pytest.raises(AppiumHTTPError):
        helper.initialize()
    assert "Start it with: appium" in capsys.readouterr().out
    assert helper.session_id is None


def test_cleanup_is_idempotent(fake_session, ready_helper):
    ready_helper.cleanup()
    ready_helper.cleanup()
    assert ready_helper.session_id is None
    assert fake_session.paths("DELETE") == ["/session/abc"]


def test_click_type_and_get_text_use_accessibility_id(fake_session, ready_helper):
    fake_session.add("POST", "/session/abc/element", {"value": element("e1")})
    fake_session.add("POST", "/session/abc/element/e1/click", {"value": None})
    fake_session.add("POST", "/session/abc/element/e1/value", {"value": None})
    fake_session.add("GET", "/session/abc/element/e1/text", {"value": "Welcome"})

    ready_helper.click("login-button")
    ready_helper.type("email-input", "a@b.c")
    assert ready_helper.get_text("welcome-text") == "Welcome"

    finds = [c["json"] for c in fake_session.calls if c["path"] == "/session/abc/element"]
    assert finds[0] == {"using": "accessibility id", "value": "login-button"}
    assert finds[2]["value"] == "welcome-text"


def test_find_element_by_xpath(fake_session, ready_helper):
    fake_session.add("POST", "/session/abc/element", {"value": element("x1")})
    assert ready_helper.find_element_by_xpath("//android.widget.Button").element_id == "x1"
    assert fake_session.calls[-1]["json"]["using"] == "xpath"


def test_wait_for_element_succeeds_after_retries(fake_session, ready_helper):
    """Test that an element appearing within the timeout is returned."""
    fake_session.add("POST", "/session/abc/element", {"value": {"error": "no such element"}}, status=404)
    fake_session.add("POST", "/session/abc/element", {"value": {"error": "no such element"}}, status=404)
    fake_session.add("POST", "/session/abc/element", {"value": element("late")})

    ref = ready_helper.wait_for_element("late-button", timeout_s=2.0, poll_s=0.01)
    assert ref.element_id == "late"


def test_wait_for_element_raises_after_timeout(ready_helper):
    """Test that a missing element raises only after the full timeout."""
    started = time.monotonic()
    with pytest.raises(ElementNotFoundError) as excinfo:
        ready_helper.wait_for_element("missing", timeout_s=0.2, poll_s=0.05)

    assert time.monotonic() - started >= 0.2
    assert excinfo.value.accessibility_id == "missing"
    assert isinstance(excinfo.value.last_error, AppiumHTTPError)
    assert "missing" in str(excinfo.value)
    assert str(excinfo.value).endswith("(last error: no such element)")


def test_wait_for_element_zero_timeout_tries_once(fake_session, ready_helper):
    with pytest.raises(ElementNotFoundError):
        ready_helper.wait_for_element("missing", timeout_s=0)
    assert fake_session.paths("POST").count("/session/abc/element") == 1


def test_wait_for_element_rejects_bad_arguments(ready_helper):
    with pytest.raises(ValueError):
        ready_helper.wait_for_element("x", timeout_s=-1)
    with pytest.raises(ValueError):
        ready_helper.wait_for_element("x", poll_s=0)


def test_element_exists(fake_session, ready_helper):
    assert ready_helper.element_exists("missing") is False
    fake_session.add("POST", "/session/abc/element", {"value": element("e1")})
    assert ready_helper.element_exists("present") is True


def test_element_exists_without_session(helper):
    assert helper.element_exists("anything") is False


def test_is_app_responsive(fake_session, ready_helper):
    assert ready_helper.is_app_responsive() is False
    fake_session.add("GET", "/session/abc/source", {"value": "<hierarchy/>"})
    assert ready_helper.is_app_responsive() is True


def test_take_screenshot_and_save(fake_session, ready_helper, tmp_path):
    fake_session.add("GET", "/session/abc/screenshot", {"value": PNG_BASE64})
    path = ready_helper.take_screenshot_and_save(tmp_path / "shots" / "home.png")
    assert path.read_bytes() == PNG_BYTES


def test_reload_terminates_then_activates(fake_session, ready_helper, monkeypatch):
    sleeps = []
    monkeypatch.setattr("stagehand.appium.native_app.time.sleep", sleeps.append)
    fake_session.add("POST", "/session/abc/appium/device/terminate_app", {"value": True})
    fake_session.add("POST", "/session/abc/appium/device/activate_app", {"value": None})

    ready_helper.reload()

    assert fake_session.paths("POST")[-2:] == [
        "/session/abc/appium/device/terminate_app",
        "/session/abc/appium/device/activate_app",
    ]
    assert sleeps == [1.0, 3.0]


def test_press_back_and_background(fake_session, ready_helper):
    fake_session.add("POST", "/session/abc/appium/device/press_keycode", {"value": None})
    fake_session.add("POST", "/session/abc/appium/app/background", {"value": None})

    ready_helper.press_back()
    ready_helper.background()

    assert fake_session.calls[-2]["json"] == {"keycode": 4}
    assert fake_session.calls[-1]["json"] == {"seconds": 3}


def test_install_and_uninstall(fake_session, ready_helper, tmp_path):
    fake_session.add("POST", "/session/abc/appium/device/install_app", {"value": None})
    fake_session.add("POST", "/session/abc/appium/device/remove_app", {"value": True})

    ready_helper.install(str(tmp_path / "app.apk"))
    ready_helper.uninstall()

    assert fake_session.calls[-2]["json"] == {"appPath": str((tmp_path / "app.apk").resolve())}
    assert fake_session.calls[-1]["json"]["appId"] == "com.example.app"


def test_execute_deep_link_adds_android_package(fake_session, ready_helper):
    fake_session.add("POST", "/session/abc/execute/sync", {"value": None})
    ready_helper.execute_deep_link("myapp://profile")
    assert fake_session.calls[-1]["json"] == {
        "script": "mobile: deepLink",
        "args": [{"url": "myapp://profile", "package": "com.example.app"}],
    }


def test_explicit_config_ignores_environment(monkeypatch, client):
    """Test that a complete AppiumConfig never reads the environment."""
    monkeypatch.setenv("APPIUM_SYSTEM_PORT", "not-a-port")
    helper = NativeAppHelper(AppiumConfig(device_name="Pixel 7"), client=client)
    assert helper.config.device_name == "Pixel 7"

    with pytest.raises(ValueError, match="APPIUM_SYSTEM_PORT"):
        NativeAppHelper({"device_name": "Pixel 7"}, client=client)
