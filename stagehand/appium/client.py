from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Optional

import requests

W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"


class AppiumHTTPError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        response_json: Optional[dict[str, Any]] = None,
        response_text: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.response_json = response_json
        self.response_text = response_text

    @property
    def webdriver_error(self) -> Optional[str]:
        """W3C error code such as 'no such element', when the server sent one."""
        if not isinstance(self.response_json, dict):
            return None
        value = _extract_webdriver_value(self.response_json)
        if isinstance(value, dict) and isinstance(value.get("error"), str):
            return value["error"]
        return None


@dataclass(frozen=True)
class ElementRef:
    element_id: str


def _extract_webdriver_value(payload: dict[str, Any]) -> Any:
    # W3C WebDriver wraps results in {"value": ...}
    if "value" in payload:
        return payload["value"]
    return payload


def _extract_element_id(element_obj: Any) -> str:
    if not isinstance(element_obj, dict):
        raise ValueError(f"Unexpected element payload type: {type(element_obj)}")

    if element_obj.get(W3C_ELEMENT_KEY):
        return str(element_obj[W3C_ELEMENT_KEY])

    # Legacy JSONWire key
    if element_obj.get("ELEMENT"):
        return str(element_obj["ELEMENT"])

    raise ValueError(f"Could not extract element id from payload keys: {list(element_obj.keys())}")


class AppiumHTTPClient:
    """
    Single-session Appium client speaking the WebDriver HTTP protocol.

    One client owns at most one session at a time. Element handles returned by
    the find methods are only meaningful for the session that produced them.
    """

    def __init__(
        self,
        server_url: str,
        *,
        timeout_s: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session_id: Optional[str] = None
        self._session = session if session is not None else requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        timeout_s: Optional[float] = None,
    ) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        try:
            response = self._session.request(
                method, url, json=json, timeout=timeout_s if timeout_s is not None else self.timeout_s
            )
        except requests.RequestException as e:
            raise AppiumHTTPError(
                message=f"Failed to call Appium server: {e}",
                method=method,
                url=url,
            ) from e

        response_text = None
        response_json: Optional[dict[str, Any]] = None
        try:
            response_json = response.json()
        except ValueError:
            response_text = response.text

        if response.status_code >= 400:
            details = None
            if isinstance(response_json, dict):
                value = _extract_webdriver_value(response_json)
                if isinstance(value, dict):
                    details = value.get("message") or value.get("error")
            raise AppiumHTTPError(
                message=f"Appium HTTP {response.status_code} for {method} {path}"
                + (f": {details}" if details else ""),
                method=method,
                url=url,
                status_code=response.status_code,
                response_json=response_json if isinstance(response_json, dict) else None,
                response_text=response_text,
            )

        if not isinstance(response_json, dict):
            raise AppiumHTTPError(
                message=f"Appium returned non-JSON response for {method} {path}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response_text,
            )

        return response_json

    def _session_path(self, suffix: str = "") -> str:
        self._require_session()
        return f"/session/{self.session_id}{suffix}"

    def _shape_error(self, *, method: str, path: str, expected: str, response: dict[str, Any]) -> AppiumHTTPError:
        return AppiumHTTPError(
            message=f"Unexpected {path} response shape (expected {expected})",
            method=method,
            url=f"{self.server_url}{path}",
            response_json=response,
        )

    def status(self, *, timeout_s: Optional[float] = None) -> dict[str, Any]:
        response = self._request("GET", "/status", timeout_s=timeout_s)
        value = _extract_webdriver_value(response)
        if not isinstance(value, dict):
            raise self._shape_error(method="GET", path="/status", expected="object", response=response)
        # Legacy servers report {"status": 0, "value": {...}}
        if "status" in response and "status" not in value:
            value = {**value, "status": response["status"]}
        return value

    def create_session(self, session_payload: dict[str, Any]) -> str:
        """
        Create an Appium session.

        `session_payload` must be a valid WebDriver session creation payload:
          {"capabilities": {"alwaysMatch": {...}, "firstMatch": [{}]}}
        """
        if not isinstance(session_payload, dict) or not session_payload:
            raise ValueError("session_payload must be a non-empty dict")

        response = self._request("POST", "/session", json=session_payload)

        # Common shapes:
        # - {"value": {"sessionId": "...", "capabilities": {...}}}
        # - {"sessionId": "...", "value": {...}}
        value = _extract_webdriver_value(response)
        session_id = None
        if isinstance(value, dict):
            session_id = value.get("sessionId")
        session_id = session_id or response.get("sessionId")

        if not session_id:
            raise AppiumHTTPError(
                message="Appium did not return a sessionId in the create_session response",
                method="POST",
                url=f"{self.server_url}/session",
                response_json=response,
            )

        self.session_id = str(session_id)
        return self.session_id

    def delete_session(self) -> None:
        if not self.session_id:
            return
        session_id = self.session_id
        try:
            self._request("DELETE", f"/session/{session_id}")
        finally:
            self.session_id = None

    def get_page_source(self) -> str:
        path = self._session_path("/source")
        response = self._request("GET", path)
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise self._shape_error(method="GET", path=path, expected="string", response=response)
        return value

    def get_screenshot_base64(self) -> str:
        path = self._session_path("/screenshot")
        response = self._request("GET", path)
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise self._shape_error(method="GET", path=path, expected="base64 string", response=response)
        return value

    def get_screenshot_png_bytes(self) -> bytes:
        encoded = self.get_screenshot_base64()
        try:
            return base64.b64decode(encoded, validate=True)
        except ValueError as e:
            raise AppiumHTTPError(
                message=f"Failed to decode screenshot base64: {e}",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/screenshot",
            ) from e

    def find_element(self, *, using: str, value: str) -> ElementRef:
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find an element")
        path = self._session_path("/element")
        response = self._request("POST", path, json={"using": using, "value": value})
        payload = _extract_webdriver_value(response)
        try:
            return ElementRef(element_id=_extract_element_id(payload))
        except ValueError as e:
            raise self._shape_error(method="POST", path=path, expected="element object", response=response) from e

    def find_elements(self, *, using: str, value: str) -> list[ElementRef]:
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find elements")
        path = self._session_path("/elements")
        response = self._request("POST", path, json={"using": using, "value": value})
        payload = _extract_webdriver_value(response)
        if not isinstance(payload, list):
            raise self._shape_error(method="POST", path=path, expected="list", response=response)
        return [ElementRef(element_id=_extract_element_id(item)) for item in payload]

    def get_element_text(self, element: ElementRef) -> str:
        path = self._session_path(f"/element/{element.element_id}/text")
        response = self._request("GET", path)
        value = _extract_webdriver_value(response)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise self._shape_error(method="GET", path=path, expected="string", response=response)
        return value

    def click(self, element: ElementRef) -> None:
        self._request("POST", self._session_path(f"/element/{element.element_id}/click"), json={})

    def send_keys(self, element: ElementRef, *, text: str) -> None:
        if text is None:
            raise ValueError("text must not be None")
        # Servers differ on `text` vs `value`; send both.
        self._request(
            "POST",
            self._session_path(f"/element/{element.element_id}/value"),
            json={"text": text, "value": list(text)},
        )

    def press_keycode(self, keycode: int) -> None:
        self._request("POST", self._session_path("/appium/device/press_keycode"), json={"keycode": int(keycode)})

    def background_app(self, seconds: float) -> None:
        self._request("POST", self._session_path("/appium/app/background"), json={"seconds": seconds})

    def activate_app(self, app_id: str) -> None:
        self._request(
            "POST",
            self._session_path("/appium/device/activate_app"),
            json={"appId": app_id, "bundleId": app_id},
        )

    def terminate_app(self, app_id: str) -> bool:
        response = self._request(
            "POST",
            self._session_path("/appium/device/terminate_app"),
            json={"appId": app_id, "bundleId": app_id},
        )
        return bool(_extract_webdriver_value(response))

    def install_app(self, app_path: str) -> None:
        self._request("POST", self._session_path("/appium/device/install_app"), json={"appPath": app_path})

    def remove_app(self, app_id: str) -> bool:
        response = self._request(
            "POST",
            self._session_path("/appium/device/remove_app"),
            json={"appId": app_id, "bundleId": app_id},
        )
        return bool(_extract_webdriver_value(response))

    def execute_script(self, script: str, args: Optional[list[Any]] = None) -> Any:
        if not script:
            raise ValueError("script is required")
        response = self._request(
            "POST",
            self._session_path("/execute/sync"),
            json={"script": script, "args": list(args or [])},
        )
        return _extract_webdriver_value(response)

    def _require_session(self) -> None:
        if not self.session_id:
            raise RuntimeError("No active Appium session. Call create_session() first.")
