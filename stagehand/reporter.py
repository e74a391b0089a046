"""
Custom test reporter: categorizes tests by type (from the title) and layer
(from the file path), prints a summary, and writes reports/custom-report.json.

Enable with `pytest --stagehand-report`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

from .fixtures import ATTACHMENT_PROPERTY

REPORT_FILENAME = "custom-report.json"

# Order matters: the first match wins.
_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("e2e", ("e2e", "end-to-end")),
    ("integration", ("integration",)),
    ("api", ("api", "contract")),
    ("accessibility", ("accessibility", "a11y")),
    ("security", ("security",)),
    ("chaos", ("chaos",)),
    ("mock", ("mock",)),
    ("network", ("network",)),
    ("validation", ("validation",)),
]

_LAYERS = ("e2e", "integration", "api", "accessibility", "security", "chaos", "mock", "network", "validation")


def extract_test_type(title: str) -> Optional[str]:
    lowered = title.lower()
    for test_type, keywords in _TYPE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return test_type
    return None


def extract_test_layer(file_path: str) -> Optional[str]:
    for layer in _LAYERS:
        if layer in file_path:
            return layer
    return None


@dataclass
class TestMetrics:
    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0
    by_type: dict[str, int] = field(default_factory=dict)
    by_layer: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration": self.duration,
            "byType": dict(self.by_type),
            "byLayer": dict(self.by_layer),
        }


@dataclass
class TestRecord:
    __test__ = False

    title: str
    status: str
    duration: float
    type: Optional[str] = None
    layer: Optional[str] = None
    error: Optional[str] = None
    attachments: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {"title": self.title, "status": self.status, "duration": self.duration}
        for key in ("type", "layer", "error"):
            value = getattr(self, key)
            if value is not None:
                row[key] = value
        if self.attachments:
            row["attachments"] = list(self.attachments)
        return row


class TestReport:
    """Accumulates per-test results. Durations are in milliseconds."""

    __test__ = False

    def __init__(self, timestamp: Optional[str] = None) -> None:
        self.timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        self.metrics = TestMetrics()
        self.tests: list[TestRecord] = []

    def begin_test(self, title: str, file_path: str) -> None:
        self.metrics.total += 1
        test_type = extract_test_type(title)
        layer = extract_test_layer(file_path)
        if test_type:
            self.metrics.by_type[test_type] = self.metrics.by_type.get(test_type, 0) + 1
        if layer:
            self.metrics.by_layer[layer] = self.metrics.by_layer.get(layer, 0) + 1

    def end_test(
        self,
        title: str,
        file_path: str,
        *,
        status: str,
        duration_ms: float,
        error: Optional[str] = None,
        attachments: Optional[list[dict[str, Any]]] = None,
    ) -> TestRecord:
        self.metrics.duration += duration_ms
        if status == "passed":
            self.metrics.passed += 1
        elif status == "failed":
            self.metrics.failed += 1
        elif status == "skipped":
            self.metrics.skipped += 1

        record = TestRecord(
            title=title,
            status=status,
            duration=duration_ms,
            type=extract_test_type(title),
            layer=extract_test_layer(file_path),
            error=error,
            attachments=list(attachments or []),
        )
        self.tests.append(record)
        return record

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "metrics": self.metrics.to_dict(),
            "tests": [t.to_dict() for t in self.tests],
        }

    def summary_lines(self) -> list[str]:
        m = self.metrics
        lines = [
            "",
            "Stagehand Test Execution Completed",
            f"   Total: {m.total}",
            f"   Passed: {m.passed}",
            f"   Failed: {m.failed}",
            f"   Skipped: {m.skipped}",
            f"   Duration: {m.duration / 1000:.2f}s",
        ]
        if m.by_type:
            lines += ["", "   By Type:"] + [f"     {k}: {v}" for k, v in m.by_type.items()]
        if m.by_layer:
            lines += ["", "   By Layer:"] + [f"     {k}: {v}" for k, v in m.by_layer.items()]
        return lines

    def save(self, reports_dir: str | Path) -> Path:
        out_dir = Path(reports_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / REPORT_FILENAME
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path


def _title(report: pytest.TestReport) -> str:
    return report.nodeid.split("::")[-1]


def _file_path(report: pytest.TestReport) -> str:
    return report.location[0] if report.location else report.nodeid.split("::")[0]


def _error_message(report: pytest.TestReport) -> Optional[str]:
    if not report.failed:
        return None
    crash = getattr(report.longrepr, "reprcrash", None)
    if crash is not None:
        return crash.message
    return str(report.longrepr) if report.longrepr else None


def _attachments(report: pytest.TestReport) -> list[dict[str, Any]]:
    return [value for key, value in report.user_properties if key == ATTACHMENT_PROPERTY]


class StagehandReporter:
    """
    pytest plugin object feeding a TestReport.

    Each test is recorded once: at setup when setup failed or skipped, at call
    otherwise. A teardown error turns an already-recorded pass into a failure.
    """

    def __init__(self, reports_dir: str | Path = "reports") -> None:
        self.reports_dir = Path(reports_dir)
        self.report = TestReport()
        self._records: dict[str, TestRecord] = {}
        self.saved_path: Optional[Path] = None

    def _record(self, report: pytest.TestReport, status: str) -> None:
        title, path = _title(report), _file_path(report)
        self.report.begin_test(title, path)
        self._records[report.nodeid] = self.report.end_test(
            title,
            path,
            status=status,
            duration_ms=report.duration * 1000,
            error=_error_message(report),
            attachments=_attachments(report),
        )

    def _emit(self, session: pytest.Session, line: str) -> None:
        terminal = session.config.pluginmanager.get_plugin("terminalreporter")
        if terminal is not None:
            terminal.write_line(line)
        else:
            print(line)

    def pytest_collection_finish(self, session: pytest.Session) -> None:
        self._emit(session, "")
        self._emit(session, "Stagehand Test Execution Started")
        self._emit(session, f"   Collected: {len(session.items)} test(s)")

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        if report.when == "setup" and not report.passed:
            self._record(report, "skipped" if report.skipped else "failed")
        elif report.when == "call":
            self._record(report, report.outcome)
        elif report.when == "teardown":
            record = self._records.get(report.nodeid)
            if record is not None:
                record.attachments = _attachments(report)
            if report.failed and record is not None and record.status == "passed":
                record.status = "failed"
                record.error = _error_message(report)
                self.report.metrics.passed -= 1
                self.report.metrics.failed += 1

    def pytest_sessionfinish(self, session: pytest.Session) -> None:
        for line in self.report.summary_lines():
            self._emit(session, line)
        self.saved_path = self.report.save(self.reports_dir)
        self._emit(session, "")
        self._emit(session, f"   Custom report saved to: {self.saved_path}")


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("stagehand")
    group.addoption(
        "--stagehand-report",
        action="store_true",
        default=False,
        help="Print a categorized summary and write reports/custom-report.json.",
    )
    group.addoption(
        "--stagehand-report-dir",
        default="reports",
        help="Directory for custom-report.json (default: reports).",
    )


def pytest_configure(config: pytest.Config) -> None:
    if config.getoption("stagehand_report") and not hasattr(config, "workerinput"):
        config.pluginmanager.register(
            StagehandReporter(config.getoption("stagehand_report_dir")),
            "stagehand-reporter",
        )
