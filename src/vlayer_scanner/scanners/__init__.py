"""Rule packs and the registry that assembles the active rule set."""

from ..config import ScanConfig
from ..errors import ConfigError
from ..models import ComplianceCategory
from .access import ACCESS_RULES
from .audit import AUDIT_RULES
from .credentials import CREDENTIAL_PACK_RULES
from .encryption import ENCRYPTION_RULES
from .errors import ERROR_PACK_RULES
from .phi import PHI_RULES
from .rbac import RBAC_PACK_RULES
from .retention import RETENTION_RULES
from .rules import FileRule, LineRule, NegativeScope, RepositoryRule, Rule
from .security import SECURITY_RULES

CATEGORY_RULES: dict[ComplianceCategory, tuple[Rule, ...]] = {
    ComplianceCategory.phi_exposure: PHI_RULES,
    ComplianceCategory.encryption: ENCRYPTION_RULES,
    ComplianceCategory.audit_logging: AUDIT_RULES,
    # General security checks report under access control
    ComplianceCategory.access_control: ACCESS_RULES + SECURITY_RULES,
    ComplianceCategory.data_retention: RETENTION_RULES,
}

EXTENDED_PACKS: dict[str, tuple[Rule, ...]] = {
    "credentials": CREDENTIAL_PACK_RULES,
    "rbac": RBAC_PACK_RULES,
    "errors": ERROR_PACK_RULES,
}


def builtin_rule_ids() -> set[str]:
    ids = {rule.id for rules in CATEGORY_RULES.values() for rule in rules}
    ids.update(rule.id for rules in EXTENDED_PACKS.values() for rule in rules)
    return ids


def build_rule_set(config: ScanConfig, custom_rules: list[Rule] | None = None) -> list[Rule]:
    """Rules for the configured categories, enabled packs, then custom rules.

    Raises:
        ConfigError: If an unknown extended pack is requested.
    """
    rules: list[Rule] = []
    for category in config.categories:
        rules.extend(CATEGORY_RULES[category])

    for pack in config.extended_packs:
        if pack not in EXTENDED_PACKS:
            raise ConfigError(
                f"Unknown extended pack {pack!r}",
                {"available": sorted(EXTENDED_PACKS)},
            )
        rules.extend(r for r in EXTENDED_PACKS[pack] if r.category in config.categories)

    rules.extend(custom_rules or [])
    return rules


__all__ = [
    "CATEGORY_RULES",
    "EXTENDED_PACKS",
    "FileRule",
    "LineRule",
    "NegativeScope",
    "RepositoryRule",
    "Rule",
    "build_rule_set",
    "builtin_rule_ids",
]
