"""Shared fixtures for the scanner test suite."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from vlayer_scanner.config import ScanConfig
from vlayer_scanner.models import ComplianceCategory, Confidence, Finding, Severity


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return ScanConfig()


def write_files(root: Path, files: dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def make_finding(
    rule_id: str = "enc-weak-md5",
    file: str = "src/app.ts",
    line: int | None = 1,
    severity: Severity = Severity.high,
    category: ComplianceCategory = ComplianceCategory.encryption,
    title: str | None = None,
    confidence: Confidence = Confidence.high,
    **kwargs,
) -> Finding:
    return Finding(
        id=f"{rule_id}:{file}:{line or 0}",
        rule_id=rule_id,
        category=category,
        severity=severity,
        confidence=confidence,
        title=title or f"Title for {rule_id}",
        description="desc",
        file=file,
        line=line,
        recommendation="fix it",
        regulatory_reference="§164.312",
        **kwargs,
    )
