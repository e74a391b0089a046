#!/usr/bin/env python3
"""
Stagehand command line.

    stagehand ai plan "User login flow"
    stagehand ai generate "E2E test for checkout"
    stagehand ai heal tests/e2e/test_login.py "Element not found"
    stagehand appium status
    stagehand appium smoke --artifacts-dir artifacts
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

DEFAULT_GENERATED_DIR = "tests/generated"


def _write_generated(out_dir: Path, filename: str, code: str) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / filename
    path.write_text(code, encoding="utf-8")
    return path


def _cmd_ai_plan(args: argparse.Namespace) -> int:
    from stagehand.ai import ChatModeManager

    requirements = " ".join(args.requirements) or "User login and registration flow"
    print(f"Planning tests for: {requirements}")

    codes = ChatModeManager().plan_and_generate(requirements, args.context)
    print(f"\nGenerated {len(codes)} test plan(s)")

    stamp = int(time.time() * 1000)
    for index, code in enumerate(codes, 1):
        path = _write_generated(Path(args.out_dir), f"test_{stamp}_{index}.py", code.code)
        print(f"   Created: {path}")
    return 0


def _cmd_ai_generate(args: argparse.Namespace) -> int:
    from stagehand.ai import GeneratorAgent, TestPlan

    description = " ".join(args.description) or "E2E test for user login"
    print(f"Generating test code for: {description}")

    plan = TestPlan(test_name="Generated Test", description=description, type="e2e")
    code = GeneratorAgent().generate_test(plan)

    path = _write_generated(Path(args.out_dir), f"test_{int(time.time() * 1000)}.py", code.code)
    print(f"\nGenerated test: {path}")
    return 0


def _cmd_ai_heal(args: argparse.Namespace) -> int:
    from stagehand.ai import HealerAgent

    test_file = Path(args.test_file)
    if not test_file.exists() or test_file.is_dir():
        print(f"ERROR: test file not found: {test_file}", file=sys.stderr)
        return 1

    error = " ".join(args.error) or "Element not found"
    print(f"Healing test: {test_file}")
    print(f"   Error: {error}")

    page_source = Path(args.page_source).read_text(encoding="utf-8") if args.page_source else None
    suggestions = HealerAgent().heal_test(test_file.read_text(encoding="utf-8"), error, page_source)

    print(f"\nFound {len(suggestions)} healing suggestion(s):\n")
    for index, s in enumerate(suggestions, 1):
        print(f"{index}. Element: {s.element}")
        print(f"   Original: {s.original_selector}")
        print(f"   Suggested: {s.suggested_selector}")
        print(f"   Reason: {s.reason}")
        print(f"   Confidence: {s.confidence * 100:.0f}%\n")
    return 0


def _cmd_appium_status(args: argparse.Namespace) -> int:
    from stagehand.appium import AppiumServerManager, appium_server_url

    url = args.server_url or appium_server_url()
    if AppiumServerManager.is_server_running(url):
        print(f"Appium server is running at {url}")
        return 0
    print(f"Appium server is NOT reachable at {url}. Start it with: appium")
    return 1


def _cmd_appium_smoke(args: argparse.Namespace) -> int:
    from stagehand.appium import run_native_smoke_test

    result = run_native_smoke_test(
        capabilities_json_path=args.capabilities,
        server_url=args.server_url,
        artifacts_dir=args.artifacts_dir,
    )
    print("\nNative smoke test completed")
    print(f"  Session: {result.session_id}")
    print(f"  Screenshot: {result.screenshot_path}")
    print(f"  Page source: {result.page_source_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagehand",
        description="AI-assisted test authoring and native app (Appium) utilities.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    ai = commands.add_parser("ai", help="Plan, generate and heal tests with AI chat modes.")
    ai_commands = ai.add_subparsers(dest="ai_command", required=True)

    plan = ai_commands.add_parser("plan", help="Plan tests from requirements and generate code for each plan.")
    plan.add_argument("requirements", nargs="*", help="Free-text requirements.")
    plan.add_argument("--context", default=None, help="Extra context for the planner.")
    plan.add_argument("--out-dir", default=DEFAULT_GENERATED_DIR, help="Where generated tests are written.")
    plan.set_defaults(handler=_cmd_ai_plan)

    generate = ai_commands.add_parser("generate", help="Generate one test from a description.")
    generate.add_argument("description", nargs="*", help="Free-text test description.")
    generate.add_argument("--out-dir", default=DEFAULT_GENERATED_DIR, help="Where generated tests are written.")
    generate.set_defaults(handler=_cmd_ai_generate)

    heal = ai_commands.add_parser("heal", help="Suggest selector fixes for a broken test.")
    heal.add_argument("test_file", help="Path to the failing test file.")
    heal.add_argument("error", nargs="*", help="Failure message.")
    heal.add_argument("--page-source", default=None, help="Optional saved page source (HTML/XML).")
    heal.set_defaults(handler=_cmd_ai_heal)

    appium = commands.add_parser("appium", help="Native app (Appium) utilities.")
    appium_commands = appium.add_subparsers(dest="appium_command", required=True)

    status = appium_commands.add_parser("status", help="Check whether the Appium server is reachable.")
    status.add_argument("--server-url", default=None, help="Defaults to APPIUM_SERVER_URL or http://localhost:4723.")
    status.set_defaults(handler=_cmd_appium_status)

    smoke = appium_commands.add_parser("smoke", help="Start a session, capture screenshot + page source, tear down.")
    smoke.add_argument("--server-url", default=None, help="Defaults to APPIUM_SERVER_URL or http://localhost:4723.")
    smoke.add_argument(
        "--capabilities",
        default=None,
        help="Capabilities JSON file ({\"capabilities\": {...}}). Defaults to env-derived capabilities.",
    )
    smoke.add_argument("--artifacts-dir", default=None, help="Defaults to STAGEHAND_ARTIFACTS_DIR or artifacts/.")
    smoke.set_defaults(handler=_cmd_appium_smoke)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except (RuntimeError, ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
