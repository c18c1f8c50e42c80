"""General security rules reported under access control.

Covers hardcoded credentials, exposed keys and tokens, database URIs with
embedded credentials, unsafe DOM/code execution, and SQL built from strings.
"""

from ..models import ComplianceCategory, FixType, Severity, SourceFile
from .rules import CODE_EXTENSIONS, LineRule

SECURITY_REFERENCE = "§164.312(a)(1), §164.312(d)"

SECURITY_EXTENSIONS = CODE_EXTENSIONS + (".env", ".sql")


def _outside_tests(source: SourceFile) -> bool:
    # Fixtures and mocks routinely carry throwaway credentials
    return not source.is_test and "mock" not in source.relative_path.lower()


def _security_rule(fix_type: FixType | None = None, **kwargs) -> LineRule:
    return LineRule(
        category=ComplianceCategory.access_control,
        regulatory_reference=SECURITY_REFERENCE,
        extensions=SECURITY_EXTENSIONS,
        fix_type=fix_type.value if fix_type else None,
        **kwargs,
    )


_ENV_RECOMMENDATION = "Use environment variables for database connection strings."

CREDENTIAL_RULES: tuple[LineRule, ...] = (
    _security_rule(
        id="security-hardcoded-password",
        patterns=(r"""password\s*[:=]\s*['"`][^'"`]{4,}['"`]""",),
        severity=Severity.critical,
        title="Hardcoded password detected",
        description="A password appears to be hardcoded in the source code.",
        recommendation=(
            "Use environment variables or a secrets manager for credentials. "
            "Never commit passwords to source control."
        ),
        fix_type=FixType.hardcoded_password,
        file_filter=_outside_tests,
    ),
    _security_rule(
        id="security-hardcoded-pwd",
        patterns=(r"""pwd\s*[:=]\s*['"`][^'"`]{4,}['"`]""",),
        severity=Severity.critical,
        title="Hardcoded password (pwd) detected",
        description='A password appears to be hardcoded using "pwd" variable.',
        recommendation="Use environment variables or a secrets manager for credentials.",
        fix_type=FixType.hardcoded_password,
    ),
    _security_rule(
        id="security-hardcoded-secret",
        patterns=(r"""secret\s*[:=]\s*['"`][^'"`]{8,}['"`]""",),
        severity=Severity.critical,
        title="Hardcoded secret detected",
        description="A secret value appears to be hardcoded in the source code.",
        recommendation="Use environment variables or a secrets manager for secrets.",
        fix_type=FixType.hardcoded_secret,
        file_filter=_outside_tests,
    ),
    _security_rule(
        id="security-credentials-object",
        patterns=(r"credentials?\s*[:=]\s*\{[^}]*password\s*:",),
        severity=Severity.high,
        title="Credentials object with password",
        description="A credentials object containing password field was detected.",
        recommendation="Load credentials from secure configuration, not source code.",
    ),
)

KEY_RULES: tuple[LineRule, ...] = (
    _security_rule(
        id="security-api-key-exposed",
        patterns=(r"""api[_-]?key\s*[:=]\s*['"`][A-Za-z0-9_\-]{20,}['"`]""",),
        severity=Severity.critical,
        title="API key exposed in source",
        description="An API key appears to be hardcoded in the source code.",
        recommendation="Use environment variables for API keys. Add to .gitignore and use .env files.",
        fix_type=FixType.api_key_exposed,
    ),
    _security_rule(
        id="security-apikey-exposed",
        patterns=(r"""apikey\s*[:=]\s*['"`][A-Za-z0-9_\-]{20,}['"`]""",),
        severity=Severity.critical,
        title="API key (apikey) exposed in source",
        description="An API key appears to be hardcoded.",
        recommendation="Use environment variables for API keys.",
        fix_type=FixType.api_key_exposed,
    ),
    _security_rule(
        id="security-stripe-key-exposed",
        patterns=(r"(sk|pk)[_-](live|test)[_-][A-Za-z0-9]{20,}",),
        severity=Severity.critical,
        title="Stripe API key exposed",
        description="A Stripe API key pattern was detected in the source code.",
        recommendation="Never commit Stripe keys. Use environment variables and restrict key permissions.",
    ),
    _security_rule(
        id="security-aws-key-exposed",
        patterns=(r"AKIA[0-9A-Z]{16}",),
        flags=0,
        severity=Severity.critical,
        title="AWS Access Key exposed",
        description="An AWS Access Key ID pattern was detected.",
        recommendation="Rotate this key immediately. Use IAM roles or environment variables instead.",
    ),
    _security_rule(
        id="security-bearer-token-exposed",
        patterns=(r"bearer\s+[A-Za-z0-9_\-\.]{20,}",),
        severity=Severity.high,
        title="Bearer token in source",
        description="A bearer token appears to be hardcoded.",
        recommendation="Tokens should be fetched at runtime, not hardcoded.",
    ),
    _security_rule(
        id="security-auth-token-exposed",
        patterns=(r"""auth[_-]?token\s*[:=]\s*['"`][A-Za-z0-9_\-\.]{20,}['"`]""",),
        severity=Severity.critical,
        title="Auth token exposed in source",
        description="An authentication token appears to be hardcoded.",
        recommendation="Use secure token management. Never commit tokens to source control.",
    ),
    _security_rule(
        id="security-private-key-exposed",
        patterns=(r"""private[_-]?key\s*[:=]\s*['"`]-----BEGIN""",),
        severity=Severity.critical,
        title="Private key exposed in source",
        description="A private key appears to be embedded in source code.",
        recommendation="Never commit private keys. Use secure key management services.",
    ),
)

DATABASE_URI_RULES: tuple[LineRule, ...] = (
    _security_rule(
        id="security-mongodb-uri-credentials",
        patterns=(r"mongodb(\+srv)?://[^:]+:[^@]+@",),
        severity=Severity.critical,
        title="MongoDB URI with credentials",
        description="A MongoDB connection string with embedded credentials was detected.",
        recommendation=_ENV_RECOMMENDATION,
    ),
    _security_rule(
        id="security-postgres-uri-credentials",
        patterns=(r"postgres(ql)?://[^:]+:[^@]+@",),
        severity=Severity.critical,
        title="PostgreSQL URI with credentials",
        description="A PostgreSQL connection string with embedded credentials was detected.",
        recommendation=_ENV_RECOMMENDATION,
    ),
    _security_rule(
        id="security-mysql-uri-credentials",
        patterns=(r"mysql://[^:]+:[^@]+@",),
        severity=Severity.critical,
        title="MySQL URI with credentials",
        description="A MySQL connection string with embedded credentials was detected.",
        recommendation=_ENV_RECOMMENDATION,
    ),
)

SANITIZATION_RULES: tuple[LineRule, ...] = (
    _security_rule(
        id="security-innerhtml-unsanitized",
        patterns=(r"""innerHTML\s*=\s*[^'"`\s;]+""",),
        severity=Severity.high,
        title="Unsanitized innerHTML assignment",
        description="Direct innerHTML assignment without sanitization can lead to XSS vulnerabilities.",
        recommendation="Use textContent for text, or sanitize HTML with DOMPurify before innerHTML assignment.",
        fix_type=FixType.innerhtml_unsanitized,
    ),
    _security_rule(
        id="security-dangerous-innerhtml-react",
        patterns=(r"dangerouslySetInnerHTML\s*=\s*\{\s*\{\s*__html:",),
        severity=Severity.high,
        title="dangerouslySetInnerHTML usage",
        description="Using dangerouslySetInnerHTML can expose the application to XSS attacks.",
        recommendation="Sanitize content with DOMPurify before using dangerouslySetInnerHTML.",
    ),
    _security_rule(
        id="security-eval-usage",
        patterns=(r"\beval\s*\(\s*[^)]*\)",),
        severity=Severity.critical,
        title="eval() usage detected",
        description="Using eval() can execute arbitrary code and is a security risk.",
        recommendation="Avoid eval(). Use safer alternatives like JSON.parse() for data parsing.",
    ),
    _security_rule(
        id="security-function-constructor",
        patterns=(r"new\s+Function\s*\([^)]*\)",),
        severity=Severity.high,
        title="Function constructor usage",
        description="The Function constructor can execute arbitrary code like eval().",
        recommendation="Avoid dynamic code execution. Use predefined functions instead.",
    ),
    _security_rule(
        id="security-document-write",
        patterns=(r"document\.write\s*\(",),
        severity=Severity.medium,
        title="document.write usage",
        description="document.write can be exploited for XSS and blocks page rendering.",
        recommendation="Use DOM manipulation methods (appendChild, insertAdjacentHTML) instead.",
    ),
)

_SQL_KEYWORDS = r"(FROM|WHERE|AND|OR|INSERT|UPDATE|DELETE|SELECT)"

SQL_INJECTION_RULES: tuple[LineRule, ...] = (
    _security_rule(
        id="security-sql-string-concat",
        patterns=(r"""['"`]\s*\+\s*[^+]+\s*\+\s*['"`]\s*""" + _SQL_KEYWORDS,),
        severity=Severity.critical,
        title="SQL query string concatenation",
        description="Building SQL queries with string concatenation is vulnerable to SQL injection.",
        recommendation=(
            "Use parameterized queries or prepared statements. "
            "Never concatenate user input into SQL."
        ),
        fix_type=FixType.sql_injection_concat,
    ),
    _security_rule(
        id="security-sql-template-literal",
        patterns=(r"\$\{[^}]+\}\s*" + _SQL_KEYWORDS,),
        severity=Severity.critical,
        title="SQL query with template literal interpolation",
        description="Interpolating variables directly into SQL queries enables SQL injection.",
        recommendation="Use parameterized queries. Pass variables as parameters, not interpolated strings.",
        fix_type=FixType.sql_injection_template,
    ),
    _security_rule(
        id="security-query-template-injection",
        patterns=(r"""query\s*\(\s*['"`].*\$\{""",),
        severity=Severity.critical,
        title="Database query with template interpolation",
        description="Template literal interpolation in database queries can lead to injection attacks.",
        recommendation='Use parameterized queries: query("SELECT * FROM users WHERE id = $1", [userId])',
        fix_type=FixType.sql_injection_template,
    ),
    _security_rule(
        id="security-execute-string-concat",
        patterns=(r"""execute\s*\(\s*['"`].*\+""",),
        severity=Severity.critical,
        title="SQL execute with string concatenation",
        description="Concatenating strings in SQL execute statements enables injection.",
        recommendation="Use parameterized queries instead of string concatenation.",
        fix_type=FixType.sql_injection_concat,
    ),
    _security_rule(
        id="security-raw-query-injection",
        patterns=(r"""raw\s*\(\s*['"`].*\$\{""",),
        severity=Severity.critical,
        title="Raw SQL query with interpolation",
        description="Raw SQL queries with interpolated values are vulnerable to injection.",
        recommendation="Even with raw queries, use parameter binding for user-supplied values.",
        fix_type=FixType.sql_injection_template,
    ),
)

SECURITY_RULES: tuple[LineRule, ...] = (
    CREDENTIAL_RULES + KEY_RULES + DATABASE_URI_RULES + SANITIZATION_RULES + SQL_INJECTION_RULES
)
