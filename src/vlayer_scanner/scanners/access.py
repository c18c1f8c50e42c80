"""Access control rules: over-broad reads, hardcoded privilege, auth gaps."""

from ..models import ComplianceCategory, Severity
from .rules import CODE_EXTENSIONS, LineRule

ACCESS_REFERENCE = "§164.312(a)(1), §164.312(d)"

ACCESS_EXTENSIONS = CODE_EXTENSIONS + (".sql",)


def _access_rule(**kwargs) -> LineRule:
    return LineRule(
        category=ComplianceCategory.access_control,
        regulatory_reference=ACCESS_REFERENCE,
        extensions=ACCESS_EXTENSIONS,
        **kwargs,
    )


ACCESS_RULES: tuple[LineRule, ...] = (
    _access_rule(
        id="access-select-star",
        patterns=(r"\*\s*FROM\s+(patient|user|health|medical)",),
        severity=Severity.medium,
        title="SELECT * on sensitive table",
        description="Using SELECT * may retrieve more PHI than necessary.",
        recommendation="Select only required columns to minimize PHI exposure (minimum necessary).",
    ),
    _access_rule(
        id="access-hardcoded-admin",
        patterns=(r"""role\s*[:=]\s*['"`](admin|root|superuser)['"`]""",),
        severity=Severity.high,
        title="Hardcoded admin role",
        description="Hardcoded administrative role assignment detected.",
        recommendation="Use role-based access control (RBAC) with proper authentication.",
    ),
    _access_rule(
        id="access-auth-bypass",
        patterns=(r"bypass.*auth|auth.*bypass|skip.*auth",),
        severity=Severity.critical,
        title="Potential authentication bypass",
        description="Code pattern suggests authentication may be bypassed.",
        recommendation="Remove any authentication bypass mechanisms in production code.",
    ),
    _access_rule(
        id="access-admin-flag",
        patterns=(r"isAdmin\s*[:=]\s*true|admin\s*[:=]\s*true",),
        severity=Severity.medium,
        title="Hardcoded admin flag",
        description="Admin privileges set via hardcoded flag.",
        recommendation="Determine admin status through secure authentication flow.",
    ),
    _access_rule(
        id="access-public-password",
        patterns=(r"public\s+(static\s+)?.*password|password.*public",),
        severity=Severity.critical,
        title="Password field with public visibility",
        description="Password field may have public accessibility.",
        recommendation="Password fields should be private and never exposed.",
    ),
    _access_rule(
        id="access-cors-wildcard",
        patterns=(r"allow.*origin.*\*",),
        severity=Severity.high,
        title="CORS wildcard origin",
        description="CORS configured to allow all origins.",
        recommendation="Restrict CORS to specific trusted domains for PHI-handling endpoints.",
    ),
    _access_rule(
        id="access-no-session-expiry",
        patterns=(r"session.*expires?\s*[:=]\s*0|maxAge\s*:\s*0",),
        severity=Severity.high,
        title="Session without expiration",
        description="Session configured without expiration.",
        recommendation="Implement automatic session timeout for PHI access (HIPAA recommends 15 min idle).",
    ),
)
