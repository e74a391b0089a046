from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .bridge import AppiumConfig, appium_server_url, default_appium_config
from .client import AppiumHTTPClient


class CapabilitiesFileError(ValueError):
    pass


@dataclass(frozen=True)
class NativeSmokeTestResult:
    session_id: str
    screenshot_path: Path
    page_source_path: Path


def _default_artifacts_dir() -> Path:
    return Path(os.environ.get("STAGEHAND_ARTIFACTS_DIR", "artifacts")).resolve()


def load_capabilities_file(path: str | Path) -> dict[str, Any]:
    """Read a raw W3C session payload; it must be an object with a `capabilities` key."""
    caps_path = Path(path)
    if not caps_path.is_file():
        kind = "a directory" if caps_path.is_dir() else "missing"
        raise FileNotFoundError(f"Capabilities file is {kind}: {caps_path}")

    try:
        payload = json.loads(caps_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CapabilitiesFileError(f"Capabilities file is not valid JSON ({caps_path}): {e}") from e

    if not isinstance(payload, dict):
        raise CapabilitiesFileError(f"Capabilities file must hold a JSON object: {caps_path}")
    if "capabilities" not in payload:
        raise CapabilitiesFileError(f"Capabilities file has no 'capabilities' key: {caps_path}")
    return payload


def _session_payload(config: Optional[AppiumConfig], capabilities_json_path: Optional[str]) -> dict[str, Any]:
    if capabilities_json_path:
        return load_capabilities_file(capabilities_json_path)
    return (config or default_appium_config()).to_session_payload()


def run_native_smoke_test(
    *,
    config: Optional[AppiumConfig] = None,
    capabilities_json_path: Optional[str] = None,
    server_url: Optional[str] = None,
    artifacts_dir: Optional[str] = None,
    client: Optional[AppiumHTTPClient] = None,
) -> NativeSmokeTestResult:
    """
    Create a session, save a screenshot and the page source, then tear down.

    This is the fastest way to validate:
    - Appium connectivity
    - device/emulator availability
    - whether the app under test launches with the given capabilities

    A raw capabilities JSON file wins over `config` when both are given.
    """
    payload = _session_payload(config, capabilities_json_path)

    out_dir = Path(artifacts_dir).resolve() if artifacts_dir else _default_artifacts_dir()
    out_dir.mkdir(parents=True, exist_ok=True)

    client = client or AppiumHTTPClient(server_url or appium_server_url())
    session_id = client.create_session(payload)
    try:
        screenshot_path = out_dir / "native_screenshot.png"
        page_source_path = out_dir / "native_page_source.xml"

        screenshot_path.write_bytes(client.get_screenshot_png_bytes())
        page_source_path.write_text(client.get_page_source(), encoding="utf-8")

        return NativeSmokeTestResult(
            session_id=session_id,
            screenshot_path=screenshot_path,
            page_source_path=page_source_path,
        )
    finally:
        client.delete_session()
