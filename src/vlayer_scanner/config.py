"""Scan configuration: defaults, project config file and env overrides."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import ComplianceCategory, Confidence, Severity
from .timestamps import parse_iso

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".vlayerrc.json"
VLAYER_DIR = ".vlayer"

ENV_MAX_WORKERS = "VLAYER_MAX_WORKERS"
ENV_MIN_CONFIDENCE = "VLAYER_MIN_CONFIDENCE"

ALL_CATEGORIES: list[ComplianceCategory] = [
    ComplianceCategory.phi_exposure,
    ComplianceCategory.encryption,
    ComplianceCategory.audit_logging,
    ComplianceCategory.access_control,
    ComplianceCategory.data_retention,
]

DEFAULT_EXCLUDE: list[str] = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/coverage/**",
    "**/.vlayer/**",
]

# Domains whose plain-HTTP URLs are identifiers, not transport
DEFAULT_SAFE_HTTP_DOMAINS: list[str] = [
    # XML namespaces
    "www.w3.org", "w3.org", "xmlns.com", "purl.org", "ns.adobe.com",
    # CDNs
    "cdnjs.cloudflare.com", "unpkg.com", "jsdelivr.net", "cdn.jsdelivr.net",
    "googleapis.com", "fonts.googleapis.com", "ajax.googleapis.com",
    "gstatic.com", "fonts.gstatic.com", "cloudflare.com", "bootstrapcdn.com",
    "maxcdn.bootstrapcdn.com", "stackpath.bootstrapcdn.com", "code.jquery.com",
    "cdn.tailwindcss.com",
    # Schema/standards
    "schema.org", "ogp.me", "rdfs.org",
    # Healthcare standards
    "hl7.org", "www.hl7.org", "fhir.org", "terminology.hl7.org", "loinc.org",
    "snomed.info", "icd.who.int", "unitsofmeasure.org", "nucc.org", "ada.org",
    "x12.org",
    # Tooling / package registries
    "opensource.org", "creativecommons.org", "spdx.org", "json-schema.org",
    "yaml.org", "xml.org", "maven.apache.org", "www.apache.org",
    "registry.npmjs.org", "pypi.org", "rubygems.org", "crates.io",
    "pkg.go.dev", "mvnrepository.com",
    # Documentation
    "example.com", "example.org", "localhost", "127.0.0.1",
]


class AcknowledgedFinding(BaseModel):
    """Registry entry accepting the risk of matching findings."""

    pattern: str = Field(description="Glob matched against the finding's file path")
    id: Optional[str] = Field(default=None, description="Rule id, '*' wildcards allowed")
    category: Optional[ComplianceCategory] = Field(default=None)
    severity: Optional[Severity] = Field(default=None)
    reason: str
    acknowledged_by: str = Field(alias="acknowledgedBy")
    acknowledged_at: str = Field(alias="acknowledgedAt")
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")
    ticket_url: Optional[str] = Field(default=None, alias="ticketUrl")

    model_config = {"populate_by_name": True}

    @field_validator("acknowledged_at", "expires_at")
    @classmethod
    def _iso_timestamp(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_iso(value)
        return value


class ScanConfig(BaseModel):
    """Configuration record for a scan run."""

    categories: list[ComplianceCategory] = Field(default_factory=lambda: list(ALL_CATEGORIES))
    min_confidence: Confidence = Field(default=Confidence.low, alias="minConfidence")
    context_lines: int = Field(default=2, ge=0, le=20, alias="contextLines")
    exclude: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    ignore_paths: list[str] = Field(default_factory=list, alias="ignorePaths")
    safe_http_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SAFE_HTTP_DOMAINS), alias="safeHttpDomains"
    )
    acknowledged_findings: list[AcknowledgedFinding] = Field(
        default_factory=list, alias="acknowledgedFindings"
    )
    custom_rules: list[dict[str, Any]] = Field(default_factory=list, alias="customRules")
    extended_packs: list[str] = Field(default_factory=list, alias="extendedPacks")
    max_workers: int = Field(default=8, ge=1, alias="maxWorkers")
    max_file_size: int = Field(default=500_000, ge=1, alias="maxFileSize")
    history_limit: int = Field(default=100, ge=1, alias="historyLimit")
    fail_on: Severity = Field(default=Severity.high, alias="failOn")

    model_config = {"populate_by_name": True}


def load_config(target_path: str | Path, config_file: str | Path | None = None) -> ScanConfig:
    """Load the project configuration, merging list fields with defaults.

    Args:
        target_path: Project root; ``.vlayerrc.json`` is looked up there.
        config_file: Explicit config file path (overrides the lookup).

    Returns:
        The effective ScanConfig. Defaults are returned when no file exists.

    Raises:
        ConfigError: If the file exists but is not valid JSON or fails validation.
    """
    config_path = Path(config_file) if config_file else Path(target_path) / CONFIG_FILENAME

    if not config_path.is_file():
        logger.debug(f"No config file at {config_path}, using defaults")
        return apply_env_overrides(ScanConfig())

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read {config_path}: {e}", {"path": str(config_path)}) from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a JSON object", {"path": str(config_path)})

    try:
        user_config = ScanConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {config_path}",
            {"path": str(config_path), "errors": e.errors(include_url=False)},
        ) from e

    # Arrays from the user file extend the defaults instead of replacing them
    merged = user_config.model_copy(update={
        "exclude": _merge_unique(DEFAULT_EXCLUDE, user_config.exclude),
        "safe_http_domains": _merge_unique(DEFAULT_SAFE_HTTP_DOMAINS, user_config.safe_http_domains),
    })
    logger.info(f"Loaded configuration from {config_path}")
    return apply_env_overrides(merged)


def apply_env_overrides(config: ScanConfig) -> ScanConfig:
    """Apply VLAYER_* environment overrides, ignoring malformed values."""
    updates: dict[str, Any] = {}

    raw_workers = os.getenv(ENV_MAX_WORKERS)
    if raw_workers and raw_workers.strip():
        try:
            workers = int(raw_workers)
            if workers > 0:
                updates["max_workers"] = workers
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_MAX_WORKERS}={raw_workers!r}")

    raw_confidence = os.getenv(ENV_MIN_CONFIDENCE)
    if raw_confidence and raw_confidence.strip():
        try:
            updates["min_confidence"] = Confidence(raw_confidence.strip().lower())
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_MIN_CONFIDENCE}={raw_confidence!r}")

    return config.model_copy(update=updates) if updates else config


def _merge_unique(defaults: list[str], extra: list[str]) -> list[str]:
    merged = list(defaults)
    for item in extra:
        if item not in merged:
            merged.append(item)
    return merged


def is_path_ignored(file_path: str, config: ScanConfig) -> bool:
    """Check a path against ``ignore_paths`` (substring, or '*' wildcard)."""
    for pattern in config.ignore_paths:
        if "*" in pattern:
            regex = re.escape(pattern).replace(r"\*", ".*")
            if re.search(regex, file_path):
                return True
        elif pattern in file_path:
            return True
    return False


def is_safe_http_url(text: str, config: ScanConfig) -> bool:
    """True if the text references one of the allow-listed HTTP domains."""
    return any(domain in text for domain in config.safe_http_domains)


def vlayer_dir(project_path: str | Path) -> Path:
    """Directory holding the project's persisted scanner state."""
    return Path(project_path) / VLAYER_DIR
