"""Encryption rules: weak algorithms and data moving or resting unencrypted."""

from ..models import ComplianceCategory, FixType, Severity
from .rules import CODE_EXTENSIONS, CONFIG_EXTENSIONS, LineRule

WEAK_CRYPTO_REFERENCE = "§164.312(a)(2)(iv), §164.312(e)(2)(ii)"
TRANSMISSION_REFERENCE = "§164.312(e)(1)"

ENCRYPTION_EXTENSIONS = CODE_EXTENSIONS + CONFIG_EXTENSIONS


def _weak(id: str, pattern: str, issue: str, severity: Severity, *,
          flags: int | None = None, fix_type: FixType | None = None) -> LineRule:
    extra = {"flags": flags} if flags is not None else {}
    return LineRule(
        id=id,
        patterns=(pattern,),
        category=ComplianceCategory.encryption,
        severity=severity,
        title=f"Weak cryptography: {issue}",
        description=f"{issue} is not suitable for protecting PHI.",
        recommendation="Use AES-256-GCM for encryption and SHA-256 or stronger for hashing.",
        regulatory_reference=WEAK_CRYPTO_REFERENCE,
        extensions=ENCRYPTION_EXTENSIONS,
        fix_type=fix_type.value if fix_type else None,
        **extra,
    )


def _missing(id: str, pattern: str, issue: str, severity: Severity, *,
             fix_type: FixType | None = None, skip_safe_http_domains: bool = False) -> LineRule:
    return LineRule(
        id=id,
        patterns=(pattern,),
        category=ComplianceCategory.encryption,
        severity=severity,
        title=f"Encryption issue: {issue}",
        description=f"{issue} may expose PHI during transmission.",
        recommendation="Enforce TLS 1.2+ for all data transmission containing PHI.",
        regulatory_reference=TRANSMISSION_REFERENCE,
        extensions=ENCRYPTION_EXTENSIONS,
        fix_type=fix_type.value if fix_type else None,
        skip_safe_http_domains=skip_safe_http_domains,
    )


WEAK_CRYPTO_RULES: tuple[LineRule, ...] = (
    _weak("enc-weak-md5", r"\bmd5\s*\(", "MD5 hash function", Severity.high,
          fix_type=FixType.weak_hash_md5),
    _weak("enc-weak-sha1", r"\bsha1\s*\(", "SHA1 hash function", Severity.medium,
          fix_type=FixType.weak_hash_sha1),
    _weak("enc-weak-des", r"\bdes\b", "DES encryption", Severity.critical),
    _weak("enc-weak-rc4", r"\b(rc4|arcfour)\b", "RC4 encryption", Severity.critical),
    _weak("enc-weak-create-cipher", r"createCipher\s*\(", "Deprecated cipher method", Severity.high),
    # Uppercase only; "ecb" in identifiers is too common
    _weak("enc-weak-ecb", r"\bECB\b", "ECB mode encryption", Severity.high, flags=0),
)

MISSING_ENCRYPTION_RULES: tuple[LineRule, ...] = (
    _missing("enc-http-url", r"http://(?!localhost|127\.0\.0\.1)", "Unencrypted HTTP URL",
             Severity.high, fix_type=FixType.http_url, skip_safe_http_domains=True),
    _missing("enc-ssl-disabled", r"ssl\s*[:=]\s*false", "SSL disabled", Severity.critical),
    _missing("enc-ssl-verify-disabled", r"verify\s*[:=]\s*false.*ssl",
             "SSL verification disabled", Severity.critical),
    _missing("enc-tls-validation-disabled", r"rejectUnauthorized\s*:\s*false",
             "TLS certificate validation disabled", Severity.critical),
    _missing("enc-backup-encryption-disabled",
             r"backup.*encrypt\s*[:=]\s*false|encrypt\s*[:=]\s*false.*backup",
             "Backup encryption disabled", Severity.critical, fix_type=FixType.backup_unencrypted),
    _missing("enc-dump-without-ssl", r"mysqldump(?!.*--ssl).*password|pg_dump(?!.*--ssl)",
             "Database backup without SSL", Severity.high),
    _missing("enc-backup-file-unencrypted",
             r"backup.*(\.sql|\.csv|\.json|\.txt)\b(?!.*encrypt|.*gpg|.*aes)",
             "Unencrypted backup file format", Severity.high, fix_type=FixType.backup_unencrypted),
    _missing("enc-phi-backup-unencrypted", r"writeFile.*backup.*patient|patient.*backup.*writeFile",
             "PHI backup without encryption", Severity.critical, fix_type=FixType.backup_unencrypted),
    _missing("enc-s3-backup-no-sse", r"s3.*upload.*backup(?!.*encrypt|.*sse|.*kms)",
             "S3 backup without server-side encryption", Severity.high),
    _missing("enc-backup-storage-unencrypted",
             r"backup.*storage(?!.*encrypt)|storage.*backup(?!.*encrypt)",
             "Backup storage without encryption specified", Severity.medium),
)

ENCRYPTION_RULES: tuple[LineRule, ...] = WEAK_CRYPTO_RULES + MISSING_ENCRYPTION_RULES
