from .base_page import BasePage
from .login_page import LoginPage

__all__ = ["BasePage", "LoginPage"]
