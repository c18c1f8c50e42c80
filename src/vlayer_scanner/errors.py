"""Exception taxonomy for the scanner core."""

from typing import Any


class VlayerError(Exception):
    """Base class for errors raised by the scanner core."""

    code = "vlayer_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Structured error envelope for callers that serialize errors."""
        return {
            "ok": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            },
        }


class ConfigError(VlayerError):
    """The project configuration file is unreadable or invalid."""

    code = "config_invalid"


class RuleValidationError(VlayerError):
    """A rule descriptor failed validation."""

    code = "rule_invalid"


class AuditIntegrityError(VlayerError):
    """Stored report hash does not match the recomputed evidence hash."""

    code = "audit_integrity_mismatch"


class ReviewNotFoundError(VlayerError):
    """No manual review item exists with the requested id."""

    code = "review_not_found"


class InvalidTransitionError(VlayerError):
    """A manual review status change is not allowed from the current state."""

    code = "review_invalid_transition"


class FixWriteError(VlayerError):
    """Writing a remediated file back to disk failed."""

    code = "fix_write_failed"
