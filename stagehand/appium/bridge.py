"""
Session descriptor and server plumbing for native app automation.

Playwright has no handle on native Android/iOS apps, so native tests talk to
an Appium server over WebDriver HTTP instead. This module holds the pieces
that describe *which* app to drive and *where* the server lives.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from ..env import env_flag, env_int, env_str
from .client import AppiumHTTPClient, AppiumHTTPError

DEFAULT_APPIUM_HOST = "localhost"
DEFAULT_APPIUM_PORT = 4723
DEFAULT_BUNDLE_ID = "com.example.app"

ANDROID = "Android"
IOS = "iOS"

_DEFAULT_AUTOMATION = {ANDROID: "UiAutomator2", IOS: "XCUITest"}
_DEFAULT_DEVICE = {ANDROID: "Android Emulator", IOS: "iPhone Simulator"}
_DEFAULT_PLATFORM_VERSION = {ANDROID: "15", IOS: "17.0"}


def normalize_platform(raw: Optional[str]) -> str:
    return IOS if (raw or "").strip().lower() == "ios" else ANDROID


def default_device_name(platform_name: str) -> str:
    return _DEFAULT_DEVICE[normalize_platform(platform_name)]


def default_platform_version(platform_name: str) -> str:
    return _DEFAULT_PLATFORM_VERSION[normalize_platform(platform_name)]


def default_automation_name(platform_name: str) -> str:
    return _DEFAULT_AUTOMATION[normalize_platform(platform_name)]


@dataclass(frozen=True)
class AppiumConfig:
    platform_name: str = ANDROID
    device_name: str = _DEFAULT_DEVICE[ANDROID]
    platform_version: str = _DEFAULT_PLATFORM_VERSION[ANDROID]
    app: str = ""
    bundle_id: Optional[str] = None
    automation_name: Optional[str] = None
    no_reset: bool = False
    full_reset: bool = True
    auto_grant_permissions: bool = True
    system_port: Optional[int] = None
    udid: Optional[str] = None

    def __post_init__(self) -> None:
        if self.platform_name not in (ANDROID, IOS):
            raise ValueError(f"platform_name must be {ANDROID!r} or {IOS!r}, got {self.platform_name!r}")

    @property
    def resolved_automation_name(self) -> str:
        return self.automation_name or default_automation_name(self.platform_name)

    def merged(self, **overrides: Any) -> "AppiumConfig":
        """Return a copy with the non-None overrides applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise TypeError(f"Unknown AppiumConfig field(s): {', '.join(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_capabilities(self) -> dict[str, Any]:
        capabilities: dict[str, Any] = {
            "platformName": self.platform_name,
            "appium:deviceName": self.device_name,
            "appium:platformVersion": self.platform_version,
            "appium:automationName": self.resolved_automation_name,
            "appium:noReset": self.no_reset,
            "appium:fullReset": self.full_reset,
            "appium:autoGrantPermissions": self.auto_grant_permissions,
        }
        if self.app:
            capabilities["appium:app"] = str(Path(self.app).expanduser().resolve())
        if self.system_port:
            capabilities["appium:systemPort"] = self.system_port
        if self.bundle_id:
            capabilities["appium:bundleId"] = self.bundle_id
        if self.udid:
            capabilities["appium:udid"] = self.udid
        return capabilities

    def to_session_payload(self) -> dict[str, Any]:
        return {"capabilities": {"alwaysMatch": self.to_capabilities(), "firstMatch": [{}]}}

    def describe(self) -> dict[str, Any]:
        return {
            "platform": self.platform_name,
            "deviceName": self.device_name,
            "bundleId": self.bundle_id,
        }


@dataclass(frozen=True)
class AppiumSession:
    session_id: str
    capabilities: dict[str, Any] = field(default_factory=dict)


def default_appium_config() -> AppiumConfig:
    """Build the session descriptor from environment variables."""
    platform_name = normalize_platform(env_str("PLATFORM", ANDROID))
    return AppiumConfig(
        platform_name=platform_name,
        device_name=env_str("DEVICE_NAME") or default_device_name(platform_name),
        platform_version=env_str("PLATFORM_VERSION") or default_platform_version(platform_name),
        app=env_str("ANDROID_APP_PATH") or env_str("IOS_APP_PATH") or "",
        bundle_id=env_str("ANDROID_BUNDLE_ID") or env_str("IOS_BUNDLE_ID") or DEFAULT_BUNDLE_ID,
        automation_name=default_automation_name(platform_name),
        no_reset=env_flag("APPIUM_NO_RESET", False),
        full_reset=env_flag("APPIUM_FULL_RESET", True),
        auto_grant_permissions=env_flag("APPIUM_AUTO_GRANT_PERMISSIONS", True),
        system_port=env_int("APPIUM_SYSTEM_PORT"),
        udid=env_str("APPIUM_UDID"),
    )


def appium_config_from_metadata(metadata: dict[str, Any]) -> AppiumConfig:
    """
    Build the session descriptor for a native test project.

    Project metadata wins; environment variables fill the gaps, then the
    per-platform defaults.
    """
    platform_name = normalize_platform(metadata.get("platform") or env_str("PLATFORM", ANDROID))
    return AppiumConfig(
        platform_name=platform_name,
        device_name=metadata.get("device_name") or env_str("DEVICE_NAME") or default_device_name(platform_name),
        platform_version=(
            metadata.get("platform_version")
            or env_str("PLATFORM_VERSION")
            or default_platform_version(platform_name)
        ),
        app=metadata.get("app_path") or env_str("ANDROID_APP_PATH") or env_str("IOS_APP_PATH") or "",
        bundle_id=(
            metadata.get("bundle_id")
            or env_str("ANDROID_BUNDLE_ID")
            or env_str("IOS_BUNDLE_ID")
            or DEFAULT_BUNDLE_ID
        ),
        automation_name=metadata.get("automation_name") or default_automation_name(platform_name),
        no_reset=env_flag("APPIUM_NO_RESET", False),
        full_reset=env_flag("APPIUM_FULL_RESET", True),
        auto_grant_permissions=env_flag("APPIUM_AUTO_GRANT_PERMISSIONS", True),
        system_port=env_int("APPIUM_SYSTEM_PORT"),
        udid=env_str("APPIUM_UDID"),
    )


def appium_server_url() -> str:
    explicit = env_str("APPIUM_SERVER_URL")
    if explicit:
        return explicit.rstrip("/")
    host = env_str("APPIUM_HOST", DEFAULT_APPIUM_HOST)
    port = env_int("APPIUM_PORT", DEFAULT_APPIUM_PORT)
    return f"http://{host}:{port}"


class AppiumServerManager:
    """
    Checks on an externally managed Appium server.

    Nothing here spawns Appium; `start_server` only tells the user how to do it.
    """

    status_timeout_s = 2.0

    @classmethod
    def is_server_running(cls, server_url: Optional[str] = None, *, client: Optional[AppiumHTTPClient] = None) -> bool:
        probe = client or AppiumHTTPClient(server_url or appium_server_url())
        try:
            status = probe.status(timeout_s=cls.status_timeout_s)
        except AppiumHTTPError:
            return False
        if status.get("ready") is True:
            return True
        return status.get("status") == 0

    @classmethod
    def start_server(cls, server_url: Optional[str] = None, *, client: Optional[AppiumHTTPClient] = None) -> None:
        url = server_url or (client.server_url if client else appium_server_url())
        if cls.is_server_running(url, client=client):
            print(f"Appium server already running at {url}")
            return
        print(f"Appium server not reachable at {url}.")
        print("Please ensure Appium server is running. Start it with: appium")

    @classmethod
    def stop_server(cls) -> None:
        print("Appium server stop requested (server is managed externally)")

    @classmethod
    def wait_until_ready(
        cls,
        server_url: Optional[str] = None,
        *,
        timeout_s: float = 5.0,
        poll_s: float = 0.5,
        client: Optional[AppiumHTTPClient] = None,
    ) -> bool:
        deadline = time.monotonic() + timeout_s
        while True:
            if cls.is_server_running(server_url, client=client):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(poll_s)
