"""PHI exposure rules: identifiers and health data hardcoded or leaked."""

from ..models import ComplianceCategory, Confidence, FixType, Severity
from .rules import CODE_EXTENSIONS, LineRule

PHI_REFERENCE = "§164.502, §164.514"


def _phi_rule(**kwargs) -> LineRule:
    return LineRule(
        category=ComplianceCategory.phi_exposure,
        regulatory_reference=PHI_REFERENCE,
        extensions=CODE_EXTENSIONS,
        **kwargs,
    )


PHI_RULES: tuple[LineRule, ...] = (
    _phi_rule(
        id="phi-ssn-hardcoded",
        patterns=(r"\b\d{3}-\d{2}-\d{4}\b",),
        severity=Severity.critical,
        title="Potential SSN detected",
        description="A pattern matching Social Security Number format was found in the code.",
        recommendation="Remove hardcoded SSN. Use secure storage and encryption for sensitive identifiers.",
    ),
    _phi_rule(
        id="phi-patient-name-log",
        patterns=(r"console\.(log|info|debug|warn|error)\s*\([^)]*patient.*name",),
        severity=Severity.high,
        title="Patient name in console output",
        description="Patient names may be logged to console, exposing PHI.",
        recommendation="Remove patient identifiers from logs. Use anonymized IDs for debugging.",
        fix_type=FixType.phi_console_log.value,
    ),
    _phi_rule(
        id="phi-medical-record-number",
        patterns=(r"""\b(mrn|medical.?record.?number)\s*[:=]\s*['"`]\d+['"`]""",),
        severity=Severity.high,
        title="Medical Record Number exposure",
        description="A hardcoded medical record number was detected.",
        recommendation="Never hardcode MRNs. Fetch from secure, encrypted storage.",
    ),
    _phi_rule(
        id="phi-dob-exposed",
        patterns=(r"""\b(date.?of.?birth|dob|birth.?date)\s*[:=]\s*['"`]""",),
        severity=Severity.high,
        title="Date of birth exposure",
        description="Date of birth information may be hardcoded or improperly handled.",
        recommendation="Encrypt DOB at rest and in transit. Apply minimum necessary principle.",
    ),
    _phi_rule(
        id="phi-diagnosis-code",
        patterns=(r"""\b(icd.?10|diagnosis.?code|icd.?code)\s*[:=]\s*['"`][A-Z]\d{2}""",),
        severity=Severity.medium,
        title="Diagnosis code in source",
        description="ICD-10 diagnosis codes found in source code.",
        recommendation="Load diagnosis codes from secure configuration, not source code.",
    ),
    _phi_rule(
        id="phi-in-url",
        patterns=(r"/(patient|user)/\d+/(ssn|dob|mrn|diagnosis)",),
        severity=Severity.high,
        title="PHI identifier in URL pattern",
        description="URL pattern suggests PHI may be exposed in URLs.",
        recommendation="Never include PHI in URLs. Use opaque tokens or encrypted identifiers.",
    ),
    _phi_rule(
        id="phi-email-context",
        patterns=(r"patient.*email|email.*patient",),
        severity=Severity.medium,
        confidence=Confidence.medium,
        title="Patient email handling detected",
        description="Code handles patient email addresses which are PHI.",
        recommendation="Ensure patient emails are encrypted and access is logged.",
    ),
)
