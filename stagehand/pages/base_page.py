"""
Base Page Object Model class. Every page object extends BasePage.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal, Optional, Union

from playwright.sync_api import Locator, Page, expect

from ..presets import DEFAULT_BASE_URL

Selector = Union[str, Locator]
Role = Literal["button", "link", "textbox", "heading", "checkbox"]

SCREENSHOTS_DIR = Path("test-results") / "screenshots"


class BasePage(ABC):
    def __init__(self, page: Page, base_url: Optional[str] = None):
        self.page = page
        self.base_url = (base_url or os.environ.get("BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

    @abstractmethod
    def goto(self) -> None:
        """Navigate to the page."""

    def wait_for_load(self) -> None:
        self.page.wait_for_load_state("networkidle")

    def get_by_test_id(self, test_id: str) -> Locator:
        """Preferred selector: data-testid."""
        return self.page.get_by_test_id(test_id)

    def get_by_role(self, role: Role, name: Optional[str] = None) -> Locator:
        if name is None:
            return self.page.get_by_role(role)
        return self.page.get_by_role(role, name=name)

    def get_by_text(self, text: Union[str, re.Pattern]) -> Locator:
        return self.page.get_by_text(text)

    def get_by_label(self, text: Union[str, re.Pattern]) -> Locator:
        return self.page.get_by_label(text)

    def get_by_placeholder(self, text: Union[str, re.Pattern]) -> Locator:
        return self.page.get_by_placeholder(text)

    def _locator(self, selector: Selector) -> Locator:
        return self.page.locator(selector) if isinstance(selector, str) else selector

    def take_screenshot(self, name: str) -> Path:
        path = SCREENSHOTS_DIR / f"{name}.png"
        self.page.screenshot(path=str(path), full_page=True)
        return path

    def wait_for_element(self, selector: Selector, timeout: Optional[float] = None) -> None:
        self._locator(selector).wait_for(state="visible", timeout=timeout)

    def element_exists(self, selector: Selector) -> bool:
        return self._locator(selector).count() > 0

    def fill_input(self, selector: Selector, value: str) -> None:
        self._locator(selector).fill(value)

    def click(self, selector: Selector) -> None:
        self._locator(selector).click()

    def get_text(self, selector: Selector) -> str:
        return self._locator(selector).text_content() or ""

    def verify_title(self, expected_title: Union[str, re.Pattern]) -> None:
        expect(self.page).to_have_title(expected_title)

    def verify_url(self, expected_url: Union[str, re.Pattern]) -> None:
        expect(self.page).to_have_url(expected_url)
