"""Tests for configuration loading."""

import json

import pytest

from vlayer_scanner.config import (
    CONFIG_FILENAME,
    DEFAULT_EXCLUDE,
    DEFAULT_SAFE_HTTP_DOMAINS,
    ScanConfig,
    is_path_ignored,
    load_config,
)
from vlayer_scanner.errors import ConfigError
from vlayer_scanner.models import ComplianceCategory, Confidence, Severity


def write_config(root, data):
    path = root / CONFIG_FILENAME
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


class TestLoadConfig:
    """Test the project config file and its merge with defaults."""

    def test_defaults_without_file(self, temp_dir):
        config = load_config(temp_dir)

        assert config == ScanConfig()
        assert len(config.categories) == 5
        assert config.min_confidence == Confidence.low
        assert config.max_workers == 8

    def test_camel_case_file_merged_with_defaults(self, temp_dir):
        write_config(temp_dir, {
            "categories": ["phi-exposure"],
            "minConfidence": "high",
            "exclude": ["**/fixtures/**"],
            "safeHttpDomains": ["legacy.partner.net"],
            "failOn": "critical",
            "acknowledgedFindings": [{
                "pattern": "src/legacy/**",
                "reason": "Scheduled for removal",
                "acknowledgedBy": "sec-team",
                "acknowledgedAt": "2026-01-15T00:00:00Z",
            }],
        })

        config = load_config(temp_dir)

        assert config.categories == [ComplianceCategory.phi_exposure]
        assert config.min_confidence == Confidence.high
        assert config.fail_on == Severity.critical
        assert config.exclude == DEFAULT_EXCLUDE + ["**/fixtures/**"]
        assert config.safe_http_domains[:len(DEFAULT_SAFE_HTTP_DOMAINS)] == DEFAULT_SAFE_HTTP_DOMAINS
        assert config.safe_http_domains[-1] == "legacy.partner.net"
        assert config.acknowledged_findings[0].acknowledged_by == "sec-team"

    def test_duplicate_list_entries_not_repeated(self, temp_dir):
        write_config(temp_dir, {"exclude": ["**/node_modules/**"]})
        assert load_config(temp_dir).exclude == DEFAULT_EXCLUDE

    def test_explicit_config_file(self, temp_dir):
        other = temp_dir / "ci"
        other.mkdir()
        path = write_config(other, {"maxWorkers": 2})

        assert load_config(temp_dir, config_file=path).max_workers == 2

    @pytest.mark.parametrize("data", [
        "{not json",
        "[1, 2, 3]",
        {"minConfidence": "certain"},
        {"maxWorkers": 0},
        {"categories": ["billing"]},
    ])
    def test_invalid_config_raises(self, temp_dir, data):
        write_config(temp_dir, data)
        with pytest.raises(ConfigError) as exc:
            load_config(temp_dir)
        assert exc.value.to_dict()["error"]["code"] == "config_invalid"

    def test_bad_acknowledgment_timestamp(self, temp_dir):
        write_config(temp_dir, {"acknowledgedFindings": [{
            "pattern": "**",
            "reason": "x",
            "acknowledgedBy": "me",
            "acknowledgedAt": "last tuesday",
        }]})
        with pytest.raises(ConfigError):
            load_config(temp_dir)


class TestEnvOverrides:
    """Test VLAYER_* environment variables."""

    def test_overrides_applied(self, temp_dir, monkeypatch):
        monkeypatch.setenv("VLAYER_MAX_WORKERS", "3")
        monkeypatch.setenv("VLAYER_MIN_CONFIDENCE", "Medium")

        config = load_config(temp_dir)

        assert config.max_workers == 3
        assert config.min_confidence == Confidence.medium

    def test_malformed_overrides_ignored(self, temp_dir, monkeypatch):
        monkeypatch.setenv("VLAYER_MAX_WORKERS", "many")
        monkeypatch.setenv("VLAYER_MIN_CONFIDENCE", "absolute")

        config = load_config(temp_dir)

        assert config.max_workers == 8
        assert config.min_confidence == Confidence.low

    def test_env_wins_over_file(self, temp_dir, monkeypatch):
        write_config(temp_dir, {"maxWorkers": 4})
        monkeypatch.setenv("VLAYER_MAX_WORKERS", "6")
        assert load_config(temp_dir).max_workers == 6


class TestIgnorePaths:
    """Test ignore_paths matching."""

    def test_substring_and_wildcard(self):
        config = ScanConfig(ignore_paths=["legacy/", "*.generated.ts"])

        assert is_path_ignored("src/legacy/old.ts", config)
        assert is_path_ignored("src/api.generated.ts", config)
        assert not is_path_ignored("src/api.ts", config)
