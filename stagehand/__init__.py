"""
Stagehand: Playwright presets, page objects, an Appium bridge for native
apps, pytest fixtures, a categorizing reporter and AI test-authoring agents.
"""

from __future__ import annotations

import importlib
from typing import Any

__version__ = "0.1.0"

_LAZY_EXPORTS = {
    "BasePage": "stagehand.pages",
    "LoginPage": "stagehand.pages",
    "NativeAppHelper": "stagehand.appium",
    "AppiumConfig": "stagehand.appium",
    "get_preset": "stagehand.presets",
}

__all__ = ["__version__", *_LAZY_EXPORTS]


def __getattr__(name: str) -> Any:
    """
    Lazy exports.

    Importing `stagehand` must not import Playwright.
    """
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(importlib.import_module(module_name), name)
