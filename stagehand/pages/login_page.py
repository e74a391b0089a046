from __future__ import annotations

from playwright.sync_api import Locator

from .base_page import BasePage


class LoginPage(BasePage):
    """Example page object for a login screen keyed by data-testid."""

    def email_input(self) -> Locator:
        return self.get_by_test_id("email-input")

    def password_input(self) -> Locator:
        return self.get_by_test_id("password-input")

    def login_button(self) -> Locator:
        return self.get_by_test_id("login-button")

    def error_message(self) -> Locator:
        return self.get_by_test_id("error-message")

    def goto(self) -> None:
        self.page.goto(f"{self.base_url}/login")
        self.wait_for_load()

    def login(self, email: str, password: str) -> None:
        self.fill_input(self.email_input(), email)
        self.fill_input(self.password_input(), password)
        self.click(self.login_button())

    def get_error_message(self) -> str:
        return self.get_text(self.error_message())

    def is_login_form_visible(self) -> bool:
        return (
            self.element_exists(self.email_input())
            and self.element_exists(self.password_input())
            and self.element_exists(self.login_button())
        )
