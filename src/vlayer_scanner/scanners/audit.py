"""Audit logging rules.

- Repository: package manifests exist but none declares a logging library
- File: PHI-related code performing CRUD/auth operations with no logging
  call anywhere in the file
"""

import re
from typing import Optional

from ..models import ComplianceCategory, Confidence, Severity, SourceFile
from .rules import FileRule, RepositoryRule, comment_mask

AUDIT_REFERENCE = "§164.312(b)"

MANIFEST_NAMES = {"package.json", "requirements.txt", "pyproject.toml"}

LOGGING_FRAMEWORKS = [
    "winston", "bunyan", "pino", "log4js", "morgan",
    "logging", "logger", "structlog", "loguru",
]

_PHI_KEYWORDS_RE = re.compile(r"patient|health|medical|diagnosis|treatment", re.IGNORECASE)
_LOGGING_CALL_RE = re.compile(r"\.(log|info|warn|error|audit)\s*\(|logger\.", re.IGNORECASE)

AUDIT_REQUIRED_ACTIONS = [
    (re.compile(r"\.(create|insert|save|add)\s*\(", re.IGNORECASE), "create"),
    (re.compile(r"\.(update|modify|patch|put)\s*\(", re.IGNORECASE), "update"),
    (re.compile(r"\.(delete|remove|destroy)\s*\(", re.IGNORECASE), "delete"),
    (re.compile(r"\.(read|get|find|fetch|select)\s*\(", re.IGNORECASE), "read"),
    (re.compile(r"\.(login|authenticate|authorize)\s*\(", re.IGNORECASE), "auth"),
]


def _missing_logging_framework(corpus: list[SourceFile]) -> Optional[str]:
    manifests = [f for f in corpus if f.name in MANIFEST_NAMES]
    if not manifests:
        return None
    for manifest in manifests:
        if any(fw in manifest.content for fw in LOGGING_FRAMEWORKS):
            return None
    checked = ", ".join(m.relative_path for m in manifests)
    return f"No recognized logging framework found in dependencies ({checked})."


def _first_unlogged_phi_operation(source: SourceFile, lines: list[str]) -> Optional[tuple[int, Optional[str]]]:
    if not _PHI_KEYWORDS_RE.search(source.content):
        return None
    if _LOGGING_CALL_RE.search(source.content):
        return None

    comments = comment_mask(lines, source.extension)
    for index, line in enumerate(lines):
        if comments[index]:
            continue
        for pattern, action in AUDIT_REQUIRED_ACTIONS:
            if pattern.search(line):
                return index, (
                    f"A {action} operation on PHI-related data was found without "
                    "apparent audit logging in this file."
                )
    return None


def _not_test_or_spec(source: SourceFile) -> bool:
    path = source.relative_path.lower()
    return "test" not in path and "spec" not in path


NO_LOGGING_FRAMEWORK = RepositoryRule(
    id="audit-no-framework",
    category=ComplianceCategory.audit_logging,
    severity=Severity.high,
    title="No audit logging framework detected",
    description="No recognized logging framework found in dependencies.",
    recommendation="Implement structured audit logging using winston, pino, or similar.",
    regulatory_reference=AUDIT_REFERENCE,
    check=_missing_logging_framework,
)

UNLOGGED_PHI_OPERATION = FileRule(
    id="audit-unlogged-phi-operation",
    category=ComplianceCategory.audit_logging,
    severity=Severity.medium,
    confidence=Confidence.medium,
    title="PHI operation may lack audit logging",
    description="An operation on PHI-related data was found without apparent audit logging in this file.",
    recommendation="Log all operations on PHI with timestamp, user ID, and action details.",
    regulatory_reference=AUDIT_REFERENCE,
    extensions=(".ts", ".js", ".tsx", ".jsx", ".py", ".java", ".go"),
    file_filter=_not_test_or_spec,
    check=_first_unlogged_phi_operation,
)

AUDIT_RULES = (NO_LOGGING_FRAMEWORK, UNLOGGED_PHI_OPERATION)
