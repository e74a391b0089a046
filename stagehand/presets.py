"""
Playwright configuration presets.

Three presets mirror how the suites are run:
- `base`:   shared defaults (timeouts, reporters, artifacts, CI switches)
- `web`:    desktop and mobile browsers against a TEST_ENV-selected base URL
- `mobile`: mobile web emulation plus native Android/iOS projects (Appium)

Presets are plain values. `context_args` turns a preset + project into
keyword arguments for `Browser.new_context`, pulling device descriptors from
`playwright.devices` (or any mapping with the same shape).
"""

from __future__ import annotations

import copy
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .env import ensure_dotenv_loaded, env_flag, env_int, env_str

DEFAULT_BASE_URL = "http://localhost:3000"
STAGING_BASE_URL = "https://staging.example.com"
PROD_BASE_URL = "https://example.com"

# Keys the runner consumes itself; Browser.new_context rejects them.
RUNNER_ONLY_KEYS = frozenset(
    {
        "headless",
        "trace",
        "screenshot",
        "video",
        "action_timeout",
        "navigation_timeout",
        "default_browser_type",
    }
)


@dataclass(frozen=True)
class Project:
    name: str
    device: Optional[str] = None
    use: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_native(self) -> bool:
        return "native" in self.name


@dataclass(frozen=True)
class PlaywrightPreset:
    name: str
    test_dir: str
    timeout_ms: int
    expect_timeout_ms: int
    fully_parallel: bool
    forbid_only: bool
    retries: int
    workers: Optional[int]
    reporters: list[tuple[str, dict[str, Any]]]
    use: dict[str, Any]
    output_dir: str
    projects: list[Project]

    def project(self, name: str) -> Project:
        for project in self.projects:
            if project.name == name:
                return project
        known = ", ".join(p.name for p in self.projects)
        raise KeyError(f"Unknown project {name!r} in preset {self.name!r} (known: {known})")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_ci() -> bool:
    return bool(env_str("CI"))


def resolve_test_env() -> str:
    explicit = env_str("TEST_ENV")
    if explicit:
        return explicit.lower()
    return "ci" if is_ci() else "local"


def resolve_base_url(test_env: Optional[str] = None) -> str:
    explicit = env_str("BASE_URL")
    if explicit:
        return explicit
    test_env = test_env or resolve_test_env()
    if test_env == "staging":
        return env_str("STAGING_BASE_URL", STAGING_BASE_URL)
    if test_env == "prod":
        return env_str("PROD_BASE_URL", PROD_BASE_URL)
    return DEFAULT_BASE_URL


def _reporters(ci: bool) -> list[tuple[str, dict[str, Any]]]:
    reporters: list[tuple[str, dict[str, Any]]] = [
        ("list", {}),
        ("html", {"output_folder": "reports/html", "open": "never" if ci else "on-failure"}),
        ("junit", {"output_file": "reports/junit/results.xml", "include_project_in_test_name": True}),
        ("json", {"output_file": "reports/json/results.json"}),
        ("allure-playwright", {"output_folder": "reports/allure-results", "detail": True, "suite_title": False}),
    ]
    if ci:
        reporters.append(("github", {}))
    return reporters


def base_preset() -> PlaywrightPreset:
    ensure_dotenv_loaded()
    ci = is_ci()
    use = {
        "headless": ci or env_flag("HEADLESS", False),
        "trace": "on" if ci else "retain-on-failure",
        "screenshot": "on" if ci else "only-on-failure",
        "video": "on" if ci else "retain-on-failure",
        "base_url": env_str("BASE_URL"),
        "locale": "en-US",
        "viewport": {"width": 1280, "height": 720},
        "action_timeout": 30_000,
        "navigation_timeout": env_int("PLAYWRIGHT_NAVIGATION_TIMEOUT", 60_000),
        "ignore_https_errors": env_flag("IGNORE_HTTPS_ERRORS", False),
    }
    return PlaywrightPreset(
        name="base",
        test_dir="tests",
        timeout_ms=60_000,
        expect_timeout_ms=10_000,
        fully_parallel=True,
        forbid_only=ci,
        retries=2 if ci else 0,
        workers=4 if ci else None,
        reporters=_reporters(ci),
        use=use,
        output_dir="reports/artifacts",
        projects=[Project(name="chromium", device="Desktop Chrome")],
    )


def web_preset() -> PlaywrightPreset:
    base = base_preset()
    test_env = resolve_test_env()
    staging = test_env == "staging"
    prod = test_env == "prod"
    base_url = resolve_base_url(test_env)

    use = {
        **base.use,
        "base_url": base_url,
        "navigation_timeout": 30_000 if prod else env_int("PLAYWRIGHT_NAVIGATION_TIMEOUT", 60_000),
        # Staging runs behind self-signed certificates.
        "ignore_https_errors": staging or env_flag("IGNORE_HTTPS_ERRORS", False),
    }
    retries = 2 if staging else (1 if prod else 0)
    projects = [
        Project(name=name, device=device, use={"base_url": base_url})
        for name, device in (
            ("desktop-chrome", "Desktop Chrome"),
            ("desktop-firefox", "Desktop Firefox"),
            ("desktop-safari", "Desktop Safari"),
            ("mobile-pixel", "Pixel 7"),
            ("mobile-iphone", "iPhone 14"),
        )
    ]
    return PlaywrightPreset(
        name="web",
        test_dir="tests/web",
        timeout_ms=90_000 if (staging or prod) else 60_000,
        expect_timeout_ms=base.expect_timeout_ms,
        fully_parallel=base.fully_parallel,
        forbid_only=base.forbid_only,
        retries=retries,
        workers=base.workers,
        reporters=base.reporters,
        use=use,
        output_dir=base.output_dir,
        projects=projects,
    )


def _native_use() -> dict[str, Any]:
    # Native screenshots come from the device via Appium, never from a browser.
    return {"has_touch": True, "is_mobile": True, "screenshot": "off", "video": "off", "trace": "off"}


def mobile_preset() -> PlaywrightPreset:
    base = base_preset()
    touch = {"has_touch": True, "is_mobile": True}
    use = {
        **base.use,
        "viewport": {"width": 412, "height": 915},
        "device_scale_factor": 2.625,
        **touch,
        "screenshot": "only-on-failure",
        "video": "retain-on-failure",
        "trace": "on-first-retry",
    }

    projects = [
        Project(name="mobile-android-pixel-web", device="Pixel 7", use=dict(touch)),
        Project(name="mobile-android-galaxy-web", device="Galaxy S21", use=dict(touch)),
        Project(name="mobile-ios-iphone-web", device="iPhone 14", use=dict(touch)),
        Project(
            name="mobile-android-native",
            use=_native_use(),
            metadata={
                "platform": "Android",
                "app_path": env_str("ANDROID_APP_PATH") or str(Path("builds") / "android-app.apk"),
                "bundle_id": env_str("ANDROID_BUNDLE_ID", "com.example.app"),
                "device_name": env_str("ANDROID_DEVICE_NAME", "Android Emulator"),
                "platform_version": env_str("ANDROID_PLATFORM_VERSION", "15"),
                "automation_name": "UiAutomator2",
            },
        ),
        Project(
            name="mobile-ios-native",
            use=_native_use(),
            metadata={
                "platform": "iOS",
                "app_path": env_str("IOS_APP_PATH") or str(Path("builds") / "ios-app.ipa"),
                "bundle_id": env_str("IOS_BUNDLE_ID", "com.example.app"),
                "device_name": env_str("IOS_DEVICE_NAME", "iPhone Simulator"),
                "platform_version": env_str("IOS_PLATFORM_VERSION", "17.0"),
                "automation_name": "XCUITest",
            },
        ),
    ]
    return PlaywrightPreset(
        name="mobile",
        test_dir="tests/mobile",
        timeout_ms=base.timeout_ms,
        expect_timeout_ms=base.expect_timeout_ms,
        fully_parallel=base.fully_parallel,
        forbid_only=base.forbid_only,
        retries=base.retries,
        workers=base.workers,
        reporters=base.reporters,
        use=use,
        output_dir=base.output_dir,
        projects=projects,
    )


_PRESETS = {"base": base_preset, "web": web_preset, "mobile": mobile_preset}


def get_preset(name: str) -> PlaywrightPreset:
    try:
        factory = _PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset {name!r} (expected one of: {', '.join(sorted(_PRESETS))})") from None
    return factory()


_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case_keys(options: Mapping[str, Any]) -> dict[str, Any]:
    # Descriptors copied from the Node API use camelCase (userAgent, isMobile).
    return {_CAMEL_BOUNDARY_RE.sub("_", k).lower(): copy.deepcopy(v) for k, v in options.items()}


def context_args(
    preset: PlaywrightPreset,
    project: Project | str,
    devices: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> dict[str, Any]:
    """
    Merge preset defaults, the project's device descriptor and project overrides
    into `Browser.new_context(**kwargs)` arguments.

    Later layers win: preset `use` < device descriptor < project `use`.
    """
    if isinstance(project, str):
        project = preset.project(project)

    merged: dict[str, Any] = _snake_case_keys(preset.use)
    if project.device:
        if devices is None:
            raise ValueError(f"Project {project.name!r} needs device {project.device!r}; pass playwright.devices")
        if project.device not in devices:
            raise KeyError(f"Unknown Playwright device descriptor: {project.device!r}")
        merged.update(_snake_case_keys(devices[project.device]))
    merged.update(_snake_case_keys(project.use))

    return {k: v for k, v in merged.items() if k not in RUNNER_ONLY_KEYS and v is not None}
