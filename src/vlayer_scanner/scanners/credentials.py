"""Credential security rules (opt-in pack ``credentials``).

CRED-001  weak password hashing (MD5/SHA1/SHA256 near password handling)
CRED-002  hardcoded credentials, ignoring placeholders and env lookups
CRED-003  secrets exposed to the browser through NEXT_PUBLIC_ variables
"""

import re

from ..models import ComplianceCategory, Severity
from .rules import LineRule, NegativeScope

CREDENTIAL_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".go", ".rb", ".php", ".cs",
    ".env", ".yml", ".yaml", ".json",
)

_ASSIGNED_VALUE_RE = re.compile(r"""[:=]\s*['"`]([^'"`]+)['"`]""")
_PLACEHOLDER_PREFIX_RE = re.compile(
    r"^(?:your|my|the|a|an|test|example|demo|sample|placeholder|xxx|changeme|replace|todo)",
    re.IGNORECASE,
)
_WEAK_VALUE_RE = re.compile(r"^(?:12345|qwerty|password|admin|test)", re.IGNORECASE)


def is_real_credential_value(match: re.Match, line: str) -> bool:
    """False when the assigned literal looks like a placeholder or sample."""
    value_match = _ASSIGNED_VALUE_RE.search(line)
    if not value_match:
        return True
    value = value_match.group(1)
    if _PLACEHOLDER_PREFIX_RE.match(value):
        return False
    if len(value) < 8 or _WEAK_VALUE_RE.match(value):
        return False
    return True


WEAK_PASSWORD_HASH = LineRule(
    id="CRED-001",
    title="Weak Password Hashing Algorithm Detected",
    description=(
        "Using MD5, SHA1, or SHA256 for password hashing instead of secure "
        "algorithms like bcrypt, argon2, or scrypt"
    ),
    category=ComplianceCategory.encryption,
    severity=Severity.critical,
    regulatory_reference="45 CFR §164.312(d) - Person or Entity Authentication",
    recommendation=(
        "Use bcrypt, argon2, or scrypt for password hashing. Example: await "
        "bcrypt.hash(password, 10) or await argon2.hash(password). Never use MD5, "
        "SHA1, or simple SHA256 for passwords."
    ),
    extensions=CREDENTIAL_EXTENSIONS,
    patterns=(
        r"""createHash\s*\(\s*['"`](?:md5|sha1|sha-?1|sha256|sha-?256)['"`]\s*\)""",
        r"hashlib\.(?:md5|sha1|sha256)\s*\(",
        r"(?:md5|sha1|sha256).*?(?:password|pass|pwd|hash)",
        r"(?:password|pass|pwd).*?(?:md5|sha1|sha256)",
    ),
    requires_context=r"password|passwd|pwd|credential|auth",
    negative_patterns=(
        r"bcrypt",
        r"argon2",
        r"scrypt",
        r"pbkdf2",
        r"//.*(?:don't|do not|avoid|never).*md5",
        r"/\*.*(?:don't|do not|avoid|never).*md5",
        r"checksum",
        r"file.*hash",
        r"integrity",
    ),
    context_before=5,
    context_after=5,
)

HARDCODED_CREDENTIALS = LineRule(
    id="CRED-002",
    title="Hardcoded Credentials Detected",
    description=(
        "Credentials (password, apiKey, secret, token, connectionString) hardcoded "
        "as string literals instead of using environment variables"
    ),
    category=ComplianceCategory.encryption,
    severity=Severity.critical,
    regulatory_reference="45 CFR §164.312(a)(2)(i) - Unique User Identification",
    recommendation=(
        "Move credentials to environment variables. Use process.env.PASSWORD or a "
        "secure secrets manager. Never commit credentials to source control."
    ),
    extensions=CREDENTIAL_EXTENSIONS,
    patterns=(
        r"""(?:password|passwd|pwd)\s*[:=]\s*['"`][^'"`]{8,}['"`]""",
        r"""(?:api[-_]?key|apikey)\s*[:=]\s*['"`][^'"`]{8,}['"`]""",
        r"""(?:secret|private[-_]?key|privatekey)\s*[:=]\s*['"`][^'"`]{8,}['"`]""",
        r"""(?:token|auth[-_]?token|access[-_]?token)\s*[:=]\s*['"`][^'"`]{16,}['"`]""",
        r"""(?:connection[-_]?string|connectionstring|database[-_]?url)\s*[:=]\s*['"`][^'"`]{10,}['"`]""",
        r"""['"`]Bearer\s+[A-Za-z0-9_\-\.]{16,}['"`]""",
        r"""(?:aws|service|client)[-_]?(?:key|secret)\s*[:=]\s*['"`][A-Za-z0-9+/]{20,}['"`]""",
    ),
    match_check=is_real_credential_value,
    negative_patterns=(
        r"process\.env",
        r"import\.meta\.env",
        r"env\.",
        r"ENV\[",
        r"getenv",
        r"your[-_]?(?:key|secret|password|token)",
        r"(?:placeholder|example|dummy|test|sample)",
        r"changeme",
        r"replace[-_]?(?:this|me)",
        r"(?:xxx|yyy|zzz)",
        r"""['"]\s*['"]""",
        r"\$\{",
        r"//",
        r"/\*",
    ),
    negative_scope=NegativeScope.line,
)

NEXT_PUBLIC_SECRETS = LineRule(
    id="CRED-003",
    title="Secrets Exposed to Client via NEXT_PUBLIC_ Prefix",
    description=(
        "Sensitive credentials exposed to client-side code using NEXT_PUBLIC_ "
        "environment variable prefix"
    ),
    category=ComplianceCategory.encryption,
    severity=Severity.critical,
    regulatory_reference="45 CFR §164.312(a)(2)(i) - Unique User Identification",
    recommendation=(
        "Remove NEXT_PUBLIC_ prefix from sensitive variables. Use server-side "
        "environment variables and access them in API routes. Only use NEXT_PUBLIC_ "
        "for truly public values like API endpoints or publishable keys."
    ),
    extensions=CREDENTIAL_EXTENSIONS,
    patterns=(
        r"NEXT_PUBLIC_SECRET",
        r"NEXT_PUBLIC_.*?KEY",
        r"NEXT_PUBLIC_.*?PASSWORD",
        r"NEXT_PUBLIC_SERVICE_ROLE",
        r"NEXT_PUBLIC_.*?TOKEN",
        r"NEXT_PUBLIC_.*?PRIVATE",
        r"NEXT_PUBLIC_DATABASE",
        r"NEXT_PUBLIC_.*?ADMIN",
    ),
    negative_patterns=(
        r"NEXT_PUBLIC_(?:SUPABASE|FIREBASE|CLERK)_(?:ANON|PUBLISHABLE)_KEY",
        r"NEXT_PUBLIC_.*?PUBLISHABLE",
        r"NEXT_PUBLIC_.*?PUBLIC_KEY",
        r"NEXT_PUBLIC_(?:GA|GTM|ANALYTICS|MIXPANEL|SEGMENT)_",
        r"NEXT_PUBLIC_(?:APP|SITE|BASE)_(?:URL|NAME|VERSION)",
        r"NEXT_PUBLIC_FEATURE_",
        r"//.*(?:don't|do not|avoid|never)",
    ),
    negative_scope=NegativeScope.line,
)

CREDENTIAL_PACK_RULES: tuple[LineRule, ...] = (
    WEAK_PASSWORD_HASH,
    HARDCODED_CREDENTIALS,
    NEXT_PUBLIC_SECRETS,
)
