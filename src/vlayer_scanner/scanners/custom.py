"""Custom rule descriptors supplied by the user as already-parsed dictionaries.

Each dictionary is validated against ``CustomRuleDefinition``; a rule that
fails validation, or whose regexes do not compile, is reported as a
``RuleLoadError`` and left out of the active rule set.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..errors import RuleValidationError
from ..file_walker import matches_glob
from ..models import ComplianceCategory, RuleLoadError, Severity, SourceFile
from .rules import LineRule, NegativeScope

logger = logging.getLogger(__name__)

CUSTOM_FIX_PREFIX = "custom-"

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


class FixWrapper(BaseModel):
    before: str
    after: str


class CustomRuleFix(BaseModel):
    """Line-local fix attached to a custom rule."""

    type: Literal["replace", "remove", "wrap"]
    replacement: Optional[str] = Field(default=None)
    wrapper: Optional[FixWrapper] = Field(default=None)

    @model_validator(mode="after")
    def _check_payload(self):
        if self.type == "replace" and self.replacement is None:
            raise ValueError("replace fix requires 'replacement'")
        if self.type == "wrap" and self.wrapper is None:
            raise ValueError("wrap fix requires 'wrapper'")
        return self


class CustomRuleDefinition(BaseModel):
    """Schema for a user-defined rule."""

    id: str = Field(pattern=r"^[a-z0-9-]+$", description="Lowercase alphanumeric with hyphens")
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: ComplianceCategory
    severity: Severity
    pattern: str = Field(min_length=1)
    flags: str = Field(default="gi", description="JavaScript-style flags; i, m and s are honored")
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    recommendation: str = Field(min_length=1)
    hipaa_reference: Optional[str] = Field(default=None, alias="hipaaReference")
    must_not_contain: Optional[str] = Field(default=None, alias="mustNotContain")
    fix: Optional[CustomRuleFix] = Field(default=None)

    model_config = {"populate_by_name": True}


@dataclass(frozen=True)
class GlobFilter:
    """File filter built from a custom rule's include/exclude globs."""

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    def __call__(self, source: SourceFile) -> bool:
        path = source.relative_path
        if self.include and not any(matches_glob(path, p) for p in self.include):
            return False
        if any(matches_glob(path, p) for p in self.exclude):
            return False
        return True


@dataclass
class CustomRuleSet:
    rules: list[LineRule]
    fixes: dict[str, CustomRuleFix]
    errors: list[RuleLoadError]


def parse_flags(flags: str) -> int:
    """Translate JavaScript-style regex flags; unknown letters are ignored."""
    value = 0
    for letter in flags:
        value |= _FLAG_MAP.get(letter, 0)
    return value


def custom_fix_type(rule_id: str) -> str:
    return f"{CUSTOM_FIX_PREFIX}{rule_id}"


def compile_custom_rule(raw: dict[str, Any]) -> tuple[LineRule, Optional[CustomRuleFix]]:
    """Validate one rule dictionary and build its LineRule.

    Raises:
        RuleValidationError: If the dictionary fails the schema or a regex is invalid.
    """
    if not isinstance(raw, dict):
        raise RuleValidationError("Rule must be a mapping", {"rule_id": None})

    try:
        definition = CustomRuleDefinition.model_validate(raw)
    except ValidationError as e:
        raise RuleValidationError(
            f"Invalid rule definition {raw.get('id')!r}",
            {"rule_id": raw.get("id"), "errors": e.errors(include_url=False)},
        ) from e

    flags = parse_flags(definition.flags)
    for label, source in (("pattern", definition.pattern), ("mustNotContain", definition.must_not_contain)):
        if source is None:
            continue
        try:
            re.compile(source, flags)
        except re.error as e:
            raise RuleValidationError(
                f"Invalid {label} regex in rule {definition.id!r}: {e}",
                {"rule_id": definition.id, "field": label},
            ) from e

    rule = LineRule(
        id=definition.id,
        title=definition.name,
        description=definition.description,
        category=definition.category,
        severity=definition.severity,
        recommendation=definition.recommendation,
        regulatory_reference=definition.hipaa_reference or "",
        fix_type=custom_fix_type(definition.id) if definition.fix else None,
        patterns=(definition.pattern,),
        flags=flags,
        negative_patterns=(definition.must_not_contain,) if definition.must_not_contain else (),
        negative_scope=NegativeScope.line,
        file_filter=GlobFilter(tuple(definition.include), tuple(definition.exclude)),
    )
    return rule, definition.fix


def load_custom_rules(
    raw_rules: Iterable[dict[str, Any]],
    source: str = "<inline>",
    reserved_ids: Iterable[str] = (),
) -> CustomRuleSet:
    """Compile every valid rule; collect the invalid ones as load errors."""
    result = CustomRuleSet(rules=[], fixes={}, errors=[])
    seen = set(reserved_ids)

    for raw in raw_rules:
        rule_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            rule, fix = compile_custom_rule(raw)
            if rule.id in seen:
                raise RuleValidationError(f"Duplicate rule id {rule.id!r}", {"rule_id": rule.id})
        except RuleValidationError as e:
            logger.warning(f"Skipping custom rule {rule_id!r} from {source}: {e.message}")
            details = e.details.get("errors")
            result.errors.append(RuleLoadError(
                rule_id=rule_id if isinstance(rule_id, str) else None,
                source=source,
                error=e.message,
                details=str(details) if details else None,
            ))
            continue

        seen.add(rule.id)
        result.rules.append(rule)
        if fix is not None:
            result.fixes[rule.fix_type] = fix

    return result
