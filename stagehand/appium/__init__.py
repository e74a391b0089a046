"""
Native mobile app automation (Android/iOS) over the Appium WebDriver protocol.
"""

from .bridge import (
    AppiumConfig,
    AppiumServerManager,
    AppiumSession,
    appium_server_url,
    default_appium_config,
)
from .client import AppiumHTTPClient, AppiumHTTPError, ElementRef
from .native_app import ElementNotFoundError, NativeAppHelper, create_native_app_helper
from .smoke import CapabilitiesFileError, NativeSmokeTestResult, load_capabilities_file, run_native_smoke_test

__all__ = [
    "AppiumConfig",
    "AppiumHTTPClient",
    "AppiumHTTPError",
    "AppiumServerManager",
    "AppiumSession",
    "CapabilitiesFileError",
    "ElementNotFoundError",
    "ElementRef",
    "NativeAppHelper",
    "NativeSmokeTestResult",
    "appium_server_url",
    "create_native_app_helper",
    "default_appium_config",
    "load_capabilities_file",
    "run_native_smoke_test",
]
