"""Automated remediation of fixable findings."""

from .engine import apply_fixes
from .strategies import apply_fix_strategy

__all__ = ["apply_fixes", "apply_fix_strategy"]
