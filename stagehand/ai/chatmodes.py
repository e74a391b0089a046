"""
AI chat modes for test planning, generation and healing.

Agents answer from canned responses unless live mode is on (`live=True` or
STAGEHAND_AI_LIVE=true), in which case they call an OpenAI-compatible
`/chat/completions` endpoint. Either way an API key is required, so a suite
configured for mocks behaves the same once it is switched to live.
"""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

import requests

from ..env import ensure_dotenv_loaded, env_flag

DEFAULT_MODEL = "gpt-4"
DEFAULT_BASE_URL = "https://api.openai.com/v1"

TestType = Literal["e2e", "integration", "api", "accessibility", "security", "contract"]
TEST_TYPES = ("e2e", "integration", "api", "accessibility", "security", "contract")


class ChatModeError(RuntimeError):
    pass


class ChatMode(str, Enum):
    PLANNER = "planner"
    GENERATOR = "generator"
    HEALER = "healer"


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class TestPlan:
    __test__ = False

    test_name: str
    description: str
    steps: list[str] = field(default_factory=list)
    assertions: list[str] = field(default_factory=list)
    type: TestType = "e2e"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "TestPlan":
        test_type = raw.get("type") or "e2e"
        if test_type not in TEST_TYPES:
            raise ValueError(f"Unknown test type: {test_type!r}")
        return cls(
            test_name=str(raw.get("testName") or raw.get("test_name") or ""),
            description=str(raw.get("description") or ""),
            steps=[str(s) for s in raw.get("steps") or []],
            assertions=[str(a) for a in raw.get("assertions") or []],
            type=test_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "testName": self.test_name,
            "description": self.description,
            "steps": list(self.steps),
            "assertions": list(self.assertions),
            "type": self.type,
        }


@dataclass(frozen=True)
class TestCode:
    __test__ = False

    code: str
    language: str = "python"
    framework: str = "playwright"


@dataclass(frozen=True)
class HealingSuggestion:
    element: str
    original_selector: str
    suggested_selector: str
    reason: str
    confidence: float

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "HealingSuggestion":
        return cls(
            element=str(raw["element"]),
            original_selector=str(raw.get("originalSelector") or raw.get("original_selector") or ""),
            suggested_selector=str(raw.get("suggestedSelector") or raw.get("suggested_selector") or ""),
            reason=str(raw.get("reason") or ""),
            confidence=max(0.0, min(float(raw.get("confidence", 0.0)), 1.0)),
        )


_CODE_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n(.*?)\n?```$", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_RE.match(text.strip())
    return match.group(1) + "\n" if match else text


def _parse_json_list(response: str) -> Optional[list[dict[str, Any]]]:
    """
    Parse a JSON array of objects from a model reply.

    Replies may arrive fenced or with prose around the array, so the outermost
    `[...]` segment is tried when the whole text does not parse.
    """
    text = _strip_code_fence(response).strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("[")
        end = text.rfind("]")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
    if not isinstance(parsed, list) or not all(isinstance(x, dict) for x in parsed):
        return None
    return parsed


class ChatModeAgent(ABC):
    mode: ChatMode

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        *,
        live: Optional[bool] = None,
        timeout_s: float = 60.0,
    ) -> None:
        ensure_dotenv_loaded()
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "").strip()
        self.model = model
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.live = env_flag("STAGEHAND_AI_LIVE", False) if live is None else live
        self.timeout_s = timeout_s

    def call_ai(self, messages: list[ChatMessage]) -> str:
        if not self.api_key:
            raise ChatModeError("OpenAI API key not provided. Set OPENAI_API_KEY environment variable.")

        print(f"AI chat mode ({self.mode.value}): processing request...")
        if not self.live:
            return self.mock_response(messages)
        return self._chat_completion(messages)

    def _chat_completion(self, messages: list[ChatMessage]) -> str:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "temperature": 0,
            "messages": [asdict(m) for m in messages],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ChatModeError(f"chat completion request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ChatModeError(f"chat completion returned non-JSON response: {e}") from e

        if response.status_code >= 400:
            raise ChatModeError(f"chat completion error {response.status_code}: {body}")

        try:
            return str(body["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError) as e:
            raise ChatModeError(f"Unexpected chat completion response shape: {body}") from e

    @abstractmethod
    def mock_response(self, messages: list[ChatMessage]) -> str:
        raise NotImplementedError


class PlannerAgent(ChatModeAgent):
    mode = ChatMode.PLANNER

    def plan_tests(self, requirements: str, context: Optional[str] = None) -> list[TestPlan]:
        messages = [
            ChatMessage(
                role="system",
                content=(
                    "You are a test planning expert. Analyze requirements and create comprehensive test plans. "
                    "Return a JSON array of test plans with: testName, description, steps, assertions, and type."
                ),
            ),
            ChatMessage(
                role="user",
                content=f"Requirements: {requirements}\n" + (f"Context: {context}" if context else ""),
            ),
        ]
        return self.parse_test_plans(self.call_ai(messages))

    def mock_response(self, messages: list[ChatMessage]) -> str:
        return json.dumps(
            [
                {
                    "testName": "User Login Flow",
                    "description": "Test complete user login process",
                    "steps": ["Navigate to login page", "Enter credentials", "Submit form", "Verify redirect"],
                    "assertions": [
                        "Login form is visible",
                        "Success message appears",
                        "User is redirected to dashboard",
                    ],
                    "type": "e2e",
                }
            ]
        )

    @staticmethod
    def parse_test_plans(response: str) -> list[TestPlan]:
        rows = _parse_json_list(response)
        if rows is None:
            return []
        plans: list[TestPlan] = []
        for row in rows:
            try:
                plans.append(TestPlan.from_dict(row))
            except ValueError:
                continue
        return plans


class GeneratorAgent(ChatModeAgent):
    mode = ChatMode.GENERATOR

    def generate_test(self, plan: TestPlan, framework: str = "playwright") -> TestCode:
        messages = [
            ChatMessage(
                role="system",
                content=(
                    f"You are a test code generator. Generate {framework} tests for pytest (Python) "
                    "from test plans. Use the Page Object Model pattern. Return only valid Python code."
                ),
            ),
            ChatMessage(role="user", content=f"Generate test code for: {json.dumps(plan.to_dict())}"),
        ]
        return TestCode(code=_strip_code_fence(self.call_ai(messages)), language="python", framework=framework)

    def mock_response(self, messages: list[ChatMessage]) -> str:
        return '''import re

from playwright.sync_api import Page, expect

from stagehand.pages import LoginPage


def test_user_login_flow(page: Page) -> None:
    login_page = LoginPage(page)
    login_page.goto()
    login_page.login("user@example.com", "password")
    expect(page).to_have_url(re.compile(".*dashboard"))
'''


class HealerAgent(ChatModeAgent):
    mode = ChatMode.HEALER

    def heal_test(self, test_code: str, error: str, page_source: Optional[str] = None) -> list[HealingSuggestion]:
        messages = [
            ChatMessage(
                role="system",
                content=(
                    "You are a test healing expert. Analyze broken tests and suggest fixes for selectors "
                    "and locators. Return a JSON array of healing suggestions."
                ),
            ),
            ChatMessage(
                role="user",
                content=f"Test code: {test_code}\nError: {error}\n"
                + (f"Page source: {page_source}" if page_source else ""),
            ),
        ]
        return self.parse_healing_suggestions(self.call_ai(messages))

    def mock_response(self, messages: list[ChatMessage]) -> str:
        return json.dumps(
            [
                {
                    "element": "login-button",
                    "originalSelector": "button#login",
                    "suggestedSelector": 'button[data-testid="login-button"]',
                    "reason": "ID selector may have changed, using data-testid is more stable",
                    "confidence": 0.9,
                }
            ]
        )

    @staticmethod
    def parse_healing_suggestions(response: str) -> list[HealingSuggestion]:
        rows = _parse_json_list(response)
        if rows is None:
            return []
        suggestions: list[HealingSuggestion] = []
        for row in rows:
            try:
                suggestions.append(HealingSuggestion.from_dict(row))
            except (KeyError, TypeError, ValueError):
                continue
        return suggestions


class ChatModeManager:
    """Runs planner -> generator, or the healer, with shared credentials."""

    def __init__(self, api_key: Optional[str] = None, **agent_kwargs: Any) -> None:
        self.planner = PlannerAgent(api_key, **agent_kwargs)
        self.generator = GeneratorAgent(api_key, **agent_kwargs)
        self.healer = HealerAgent(api_key, **agent_kwargs)

    def plan_and_generate(self, requirements: str, context: Optional[str] = None) -> list[TestCode]:
        plans = self.planner.plan_tests(requirements, context)
        return [self.generator.generate_test(plan) for plan in plans]

    def heal(self, test_code: str, error: str, page_source: Optional[str] = None) -> list[HealingSuggestion]:
        return self.healer.heal_test(test_code, error, page_source)
