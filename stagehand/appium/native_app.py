from __future__ import annotations

import base64
import time
from pathlib import Path
from typing import Any, Optional

from .bridge import (
    DEFAULT_BUNDLE_ID,
    AppiumConfig,
    AppiumServerManager,
    AppiumSession,
    appium_server_url,
    default_appium_config,
)
from .client import AppiumHTTPClient, AppiumHTTPError, ElementRef

ACCESSIBILITY_ID = "accessibility id"
XPATH = "xpath"
ANDROID_KEYCODE_BACK = 4


class ElementNotFoundError(RuntimeError):
    def __init__(self, accessibility_id: str, timeout_s: float, last_error: Optional[Exception] = None) -> None:
        reason = last_error
        if isinstance(last_error, AppiumHTTPError) and last_error.webdriver_error:
            reason = last_error.webdriver_error
        super().__init__(
            f"Element with accessibility ID {accessibility_id!r} not found within {timeout_s:g}s"
            + (f" (last error: {reason})" if reason else "")
        )
        self.accessibility_id = accessibility_id
        self.timeout_s = timeout_s
        self.last_error = last_error


class NativeAppHelper:
    """
    Test-facing helper for one native app session.

    Locators are accessibility ids (`testID` in React Native,
    `accessibilityIdentifier` on iOS) unless a method says otherwise.
    """

    server_start_wait_s = 5.0
    reload_terminate_pause_s = 1.0
    reload_activate_pause_s = 3.0

    def __init__(
        self,
        config: Optional[AppiumConfig | dict[str, Any]] = None,
        *,
        client: Optional[AppiumHTTPClient] = None,
        server_url: Optional[str] = None,
    ) -> None:
        if isinstance(config, AppiumConfig):
            self.config = config
        else:
            self.config = default_appium_config().merged(**(config or {}))
        self.client = client or AppiumHTTPClient(server_url or appium_server_url())
        self._session: Optional[AppiumSession] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id if self._session else None

    def initialize(self) -> AppiumSession:
        if not AppiumServerManager.is_server_running(client=self.client):
            AppiumServerManager.start_server(client=self.client)
            AppiumServerManager.wait_until_ready(timeout_s=self.server_start_wait_s, client=self.client)

        payload = self.config.to_session_payload()
        session_id = self.client.create_session(payload)
        self._session = AppiumSession(session_id=session_id, capabilities=payload["capabilities"]["alwaysMatch"])
        print(f"Native app session created: {session_id}")
        return self._session

    def cleanup(self) -> None:
        if self._session is None:
            return
        print(f"Deleting Appium session: {self._session.session_id}")
        try:
            self.client.delete_session()
        finally:
            self._session = None

    def find_element(self, accessibility_id: str) -> ElementRef:
        return self.client.find_element(using=ACCESSIBILITY_ID, value=accessibility_id)

    def find_elements(self, accessibility_id: str) -> list[ElementRef]:
        return self.client.find_elements(using=ACCESSIBILITY_ID, value=accessibility_id)

    def find_element_by_xpath(self, xpath: str) -> ElementRef:
        return self.client.find_element(using=XPATH, value=xpath)

    def click(self, accessibility_id: str) -> None:
        self.client.click(self.find_element(accessibility_id))

    def type(self, accessibility_id: str, text: str) -> None:
        self.client.send_keys(self.find_element(accessibility_id), text=text)

    def get_text(self, accessibility_id: str) -> str:
        return self.client.get_element_text(self.find_element(accessibility_id))

    def get_page_source(self) -> str:
        return self.client.get_page_source()

    def press_back(self) -> None:
        self.client.press_keycode(ANDROID_KEYCODE_BACK)

    def background(self, seconds: float = 3) -> None:
        self.client.background_app(seconds)

    def _target_bundle_id(self, bundle_id: Optional[str]) -> str:
        return bundle_id or self.config.bundle_id or DEFAULT_BUNDLE_ID

    def activate(self, bundle_id: Optional[str] = None) -> None:
        self.client.activate_app(self._target_bundle_id(bundle_id))

    def terminate(self, bundle_id: Optional[str] = None) -> None:
        self.client.terminate_app(self._target_bundle_id(bundle_id))

    def reload(self) -> None:
        bundle_id = self._target_bundle_id(None)
        self.terminate(bundle_id)
        time.sleep(self.reload_terminate_pause_s)
        self.activate(bundle_id)
        time.sleep(self.reload_activate_pause_s)

    def install(self, app_path: str) -> None:
        self.client.install_app(str(Path(app_path).expanduser().resolve()))

    def uninstall(self, bundle_id: Optional[str] = None) -> None:
        self.client.remove_app(self._target_bundle_id(bundle_id))

    def take_screenshot(self) -> str:
        return self.client.get_screenshot_base64()

    def take_screenshot_and_save(self, file_path: str | Path) -> Path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(base64.b64decode(self.take_screenshot()))
        print(f"Screenshot saved to: {path}")
        return path

    def execute_deep_link(self, url: str, package_name: Optional[str] = None) -> None:
        args: dict[str, Any] = {"url": url}
        if package_name:
            args["package"] = package_name
        elif self.config.platform_name == "Android" and self.config.bundle_id:
            args["package"] = self.config.bundle_id
        self.client.execute_script("mobile: deepLink", [args])

    def wait_for_element(self, accessibility_id: str, timeout_s: float = 10.0, poll_s: float = 0.5) -> ElementRef:
        """
        Poll `find_element` on a fixed interval until it succeeds or `timeout_s` passes.

        The final attempt happens at or after the deadline, so a raise always
        comes after at least `timeout_s` seconds.
        """
        if timeout_s < 0:
            raise ValueError("timeout_s must be >= 0")
        if poll_s <= 0:
            raise ValueError("poll_s must be > 0")

        deadline = time.monotonic() + timeout_s
        last_error: Optional[Exception] = None
        while True:
            try:
                return self.find_element(accessibility_id)
            except AppiumHTTPError as e:
                last_error = e
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(poll_s, remaining))
        raise ElementNotFoundError(accessibility_id, timeout_s, last_error)

    def element_exists(self, accessibility_id: str) -> bool:
        try:
            self.find_element(accessibility_id)
        except RuntimeError:
            return False
        return True

    def is_app_responsive(self) -> bool:
        try:
            return len(self.get_page_source()) > 0
        except RuntimeError:
            return False


def create_native_app_helper(config: Optional[AppiumConfig | dict[str, Any]] = None, **kwargs: Any) -> NativeAppHelper:
    return NativeAppHelper(config, **kwargs)
