"""Shared fakes for the Appium HTTP layer."""
import base64
from typing import Any, Optional

import pytest

from stagehand import env
from stagehand.appium.client import W3C_ELEMENT_KEY, AppiumHTTPClient

SERVER_URL = "http://appium.test:4723"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"
PNG_BASE64 = base64.b64encode(PNG_BYTES).decode("ascii")

_ISOLATED_ENV = [
    "CI",
    "TEST_ENV",
    "BASE_URL",
    "STAGING_BASE_URL",
    "PROD_BASE_URL",
    "HEADLESS",
    "IGNORE_HTTPS_ERRORS",
    "PLAYWRIGHT_NAVIGATION_TIMEOUT",
    "PLATFORM",
    "DEVICE_NAME",
    "PLATFORM_VERSION",
    "ANDROID_APP_PATH",
    "IOS_APP_PATH",
    "ANDROID_BUNDLE_ID",
    "IOS_BUNDLE_ID",
    "ANDROID_DEVICE_NAME",
    "IOS_DEVICE_NAME",
    "ANDROID_PLATFORM_VERSION",
    "IOS_PLATFORM_VERSION",
    "APPIUM_NO_RESET",
    "APPIUM_FULL_RESET",
    "APPIUM_AUTO_GRANT_PERMISSIONS",
    "APPIUM_SYSTEM_PORT",
    "APPIUM_UDID",
    "APPIUM_SERVER_URL",
    "APPIUM_HOST",
    "APPIUM_PORT",
    "OPENAI_API_KEY",
    "STAGEHAND_AI_LIVE",
    "STAGEHAND_PROJECT",
    "STAGEHAND_PRESET",
    "STAGEHAND_ARTIFACTS_DIR",
    "DOTENV_PATH",
]


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Start every test from a clean environment with .env loading disabled."""
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(env, "_DOTENV_LOADED", True)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """
    Stands in for requests.Session.

    Routes map (method, path) to a list of responses; the last one repeats.
    Unknown routes answer like Appium does for a missing element.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, method: str, path: str, payload: Any = None, *, status: int = 200, text: str = "") -> None:
        self.routes.setdefault((method, path), []).append(FakeResponse(status, payload, text))

    def add_error(self, method: str, path: str, error: Exception) -> None:
        self.routes.setdefault((method, path), []).append(error)

    def request(self, method: str, url: str, json: Optional[dict] = None, timeout: Optional[float] = None):
        path = url[len(SERVER_URL):]
        self.calls.append({"method": method, "path": path, "json": json, "timeout": timeout})
        responses = self.routes.get((method, path))
        if not responses:
            return FakeResponse(404, {"value": {"error": "no such element", "message": f"nothing at {path}"}})
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [c["path"] for c in self.calls if method is None or c["method"] == method]


def element(element_id: str) -> dict:
    return {W3C_ELEMENT_KEY: element_id}


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def client(fake_session):
    return AppiumHTTPClient(SERVER_URL, session=fake_session)


@pytest.fixture
def live_client(fake_session, client):
    """A client with an open session 'abc'."""
    fake_session.add("POST", "/session", {"value": {"sessionId": "abc", "capabilities": {}}})
    fake_session.add("DELETE", "/session/abc", {"value": None})
    client.create_session({"capabilities": {"alwaysMatch": {}}})
    return client
