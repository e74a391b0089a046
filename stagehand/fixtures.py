"""
pytest fixtures for native app tests.

Registered as a pytest plugin. Select a project with
`--stagehand-project mobile-android-native` (or STAGEHAND_PROJECT); tests then
receive a live `native_app` helper that screenshots after every click/type,
attaches an error screenshot when the test fails, and always tears down the
Appium session.

    def test_login(native_app, is_native_app):
        if not is_native_app:
            pytest.skip("native project not selected")
        native_app.wait_for_element("email-input")
        native_app.type("email-input", "user@example.com")
        native_app.click("login-button")
        assert native_app.is_app_responsive()
"""

from __future__ import annotations

import contextlib
import json
import os
import re
import sys
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import pytest

from .appium.bridge import appium_config_from_metadata
from .appium.native_app import NativeAppHelper
from .env import ensure_dotenv_loaded
from .presets import Project, get_preset

ATTACHMENT_PROPERTY = "stagehand_attachment"
DEFAULT_OUTPUT_DIR = "test-results"


@dataclass(frozen=True)
class Attachment:
    name: str
    content_type: str
    path: Optional[str] = None
    body: Optional[str] = None


class AttachmentLog:
    """
    Per-test attachments.

    Entries are mirrored into the pytest item's `user_properties` so they travel
    with the test report (and across xdist workers).
    """

    def __init__(self, user_properties: Optional[list[tuple[str, Any]]] = None) -> None:
        self._user_properties = user_properties if user_properties is not None else []
        self.items: list[Attachment] = []

    def attach(
        self,
        name: str,
        *,
        content_type: str,
        path: Optional[str | Path] = None,
        body: Optional[str] = None,
    ) -> Attachment:
        if path is None and body is None:
            raise ValueError("attachment needs a path or a body")
        attachment = Attachment(
            name=name,
            content_type=content_type,
            path=str(path) if path is not None else None,
            body=body,
        )
        self.items.append(attachment)
        self._user_properties.append((ATTACHMENT_PROPERTY, asdict(attachment)))
        return attachment

    def names(self) -> list[str]:
        return [a.name for a in self.items]


def sanitize_for_path(raw: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", raw)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ScreenshottingNativeApp:
    """
    Wraps a NativeAppHelper so `click` and `type` leave screenshots behind.

    A failed action captures `<action>_error_<id>_<ms>.png` and re-raises the
    action's own error. Screenshot failures are reported on stderr and never
    replace the action's outcome. Everything else is delegated unchanged.
    """

    def __init__(
        self,
        helper: NativeAppHelper,
        *,
        screenshots_dir: Path,
        attachments: AttachmentLog,
        ui_settle_s: float = 0.5,
    ) -> None:
        self._helper = helper
        self.screenshots_dir = screenshots_dir
        self.attachments = attachments
        self.ui_settle_s = ui_settle_s

    def __getattr__(self, name: str) -> Any:
        if name == "_helper":
            raise AttributeError(name)
        return getattr(self._helper, name)

    @property
    def helper(self) -> NativeAppHelper:
        return self._helper

    def capture(self, name: str, filename: str) -> Optional[Path]:
        path = self.screenshots_dir / filename
        try:
            saved = self._helper.take_screenshot_and_save(path)
        except Exception as e:
            print(f"Failed to capture screenshot {name!r}: {e}", file=sys.stderr)
            return None
        self.attachments.attach(name, path=saved, content_type="image/png")
        return saved

    def _perform(self, action: str, accessibility_id: str, run: Callable[[], None]) -> None:
        safe_id = sanitize_for_path(accessibility_id)
        try:
            run()
        except Exception:
            self.capture(f"{action}_error_{accessibility_id}", f"{action}_error_{safe_id}_{_now_ms()}.png")
            raise
        time.sleep(self.ui_settle_s)
        self.capture(f"{action}_{accessibility_id}", f"{action}_{safe_id}_{_now_ms()}.png")

    def click(self, accessibility_id: str) -> None:
        self._perform("click", accessibility_id, lambda: self._helper.click(accessibility_id))

    def type(self, accessibility_id: str, text: str) -> None:
        self._perform("type", accessibility_id, lambda: self._helper.type(accessibility_id, text))


@contextlib.contextmanager
def native_app_lifecycle(
    helper: NativeAppHelper,
    *,
    screenshots_dir: Path,
    attachments: AttachmentLog,
    test_failed: Callable[[], bool] = lambda: False,
    launch_settle_s: float = 2.0,
    ui_settle_s: float = 0.5,
) -> Iterator[ScreenshottingNativeApp]:
    """
    Session setup/teardown around one test body.

    initialize -> screenshots dir -> initial screenshot -> body
    -> error screenshot (if the body raised or `test_failed()`) -> cleanup
    """
    try:
        helper.initialize()
    except Exception as e:
        details = {
            "error": str(e),
            "config": helper.config.describe(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        attachments.attach("initialization_error", body=json.dumps(details, indent=2), content_type="application/json")
        raise

    try:
        screenshots_dir.mkdir(parents=True, exist_ok=True)
        app = ScreenshottingNativeApp(
            helper,
            screenshots_dir=screenshots_dir,
            attachments=attachments,
            ui_settle_s=ui_settle_s,
        )

        time.sleep(launch_settle_s)
        app.capture("initial_app_launch", "initial_app_launch.png")

        body_failed = False
        try:
            yield app
        except BaseException:
            body_failed = True
            raise
        finally:
            if body_failed or test_failed():
                app.capture("error_screenshot", "error_screenshot.png")
    finally:
        helper.cleanup()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("stagehand", "Stagehand native app fixtures")
    group.addoption(
        "--stagehand-project",
        default=os.environ.get("STAGEHAND_PROJECT", ""),
        help="Preset project to run against, e.g. mobile-android-native (env: STAGEHAND_PROJECT).",
    )
    group.addoption(
        "--stagehand-preset",
        default=os.environ.get("STAGEHAND_PRESET", "mobile"),
        help="Preset that defines the project: base, web or mobile (default: mobile).",
    )
    group.addoption(
        "--stagehand-output-dir",
        default=DEFAULT_OUTPUT_DIR,
        help=f"Directory for native screenshots (default: {DEFAULT_OUTPUT_DIR}).",
    )


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    outcome = yield
    report = outcome.get_result()
    setattr(item, f"rep_{report.when}", report)


@pytest.fixture(scope="session")
def stagehand_project(pytestconfig: pytest.Config) -> Optional[Project]:
    ensure_dotenv_loaded()
    name = (pytestconfig.getoption("stagehand_project") or "").strip()
    if not name:
        return None
    preset = get_preset(pytestconfig.getoption("stagehand_preset"))
    return preset.project(name)


@pytest.fixture
def is_native_app(stagehand_project: Optional[Project]) -> bool:
    return bool(stagehand_project and stagehand_project.is_native)


@pytest.fixture
def stagehand_attachments(request: pytest.FixtureRequest) -> AttachmentLog:
    return AttachmentLog(request.node.user_properties)


@pytest.fixture
def native_app(
    request: pytest.FixtureRequest,
    is_native_app: bool,
    stagehand_project: Optional[Project],
    stagehand_attachments: AttachmentLog,
) -> Iterator[Optional[ScreenshottingNativeApp]]:
    if not is_native_app or stagehand_project is None:
        yield None
        return

    helper = NativeAppHelper(appium_config_from_metadata(stagehand_project.metadata))
    output_dir = Path(request.config.getoption("stagehand_output_dir"))
    screenshots_dir = output_dir / "screenshots" / sanitize_for_path(request.node.nodeid)

    def _test_failed() -> bool:
        report = getattr(request.node, "rep_call", None)
        return bool(report is not None and report.failed)

    with native_app_lifecycle(
        helper,
        screenshots_dir=screenshots_dir,
        attachments=stagehand_attachments,
        test_failed=_test_failed,
    ) as app:
        yield app
