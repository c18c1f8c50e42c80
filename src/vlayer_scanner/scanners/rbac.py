"""Role-based access control rules (opt-in pack ``rbac``).

RBAC-001  PHI table access with no authorization check nearby
RBAC-002  service-role keys or admin defaults in client-side files
RBAC-003  SELECT * on PHI tables (minimum necessary)
"""

import re

from ..models import ComplianceCategory, Severity, SourceFile
from .rules import LineRule, NegativeScope

RBAC_EXTENSIONS = (".js", ".ts", ".jsx", ".tsx", ".sql", ".prisma")
ACCESS_CONTROL_REFERENCE = "45 CFR §164.312(a)(1) - Access Control"

_PHI_TABLES = (
    r"(?:patients?|health_records?|medical_records?|diagnos[ei]s|treatments?|"
    r"prescriptions?|medications?|encounters?|visits?|lab_results?)"
)

_CLIENT_PATTERNS = [
    re.compile(r"/(?:components?|pages?|app)/", re.IGNORECASE),
    re.compile(r"\.client\.", re.IGNORECASE),
    re.compile(r"use client", re.IGNORECASE),
    re.compile(r"useState|useEffect|useContext", re.IGNORECASE),
    re.compile(r"window\.", re.IGNORECASE),
    re.compile(r"document\.", re.IGNORECASE),
]

_SERVER_PATTERNS = [
    re.compile(r"/api/", re.IGNORECASE),
    re.compile(r"\.server\.", re.IGNORECASE),
    re.compile(r"getServerSideProps", re.IGNORECASE),
    re.compile(r"getStaticProps", re.IGNORECASE),
    re.compile(r"use server", re.IGNORECASE),
]

_WEB_DIRS_RE = re.compile(r"/(?:src|components?|pages?|app|views?)/", re.IGNORECASE)


def is_client_side_file(source: SourceFile) -> bool:
    """Heuristic: server indicators win, then client indicators, then web dirs."""
    path = "/" + source.relative_path
    if any(p.search(path) or p.search(source.content) for p in _SERVER_PATTERNS):
        return False
    if any(p.search(path) or p.search(source.content) for p in _CLIENT_PATTERNS):
        return True
    return bool(_WEB_DIRS_RE.search(path))


PHI_ACCESS_NO_AUTHZ = LineRule(
    id="RBAC-001",
    title="PHI Data Access Without Role/Permission Verification",
    description=(
        "Database query accessing PHI data (patient, health, medical, diagnosis, "
        "treatment, prescription) without role or permission verification"
    ),
    category=ComplianceCategory.access_control,
    severity=Severity.high,
    regulatory_reference=ACCESS_CONTROL_REFERENCE,
    recommendation=(
        'Add role/permission verification before accessing PHI data. Example: if '
        '(!hasPermission(user, "read:patients")) throw new Error("Unauthorized"). '
        "Implement RBAC middleware to verify user roles before database queries."
    ),
    extensions=RBAC_EXTENSIONS,
    patterns=(
        r"from\s+" + _PHI_TABLES,
        r"""\.(?:from|table)\s*\(\s*['"`]""" + _PHI_TABLES + r"""['"`]""",
        r"(?:Patient|HealthRecord|MedicalRecord|Diagnosis|Treatment|Prescription|Medication|"
        r"Encounter|Visit|LabResult)\.(?:find|findOne|findAll|findMany|query|where)",
        r"prisma\.(?:patient|healthRecord|medicalRecord|diagnosis|treatment|prescription|medication)"
        r"\.(?:findMany|findUnique|findFirst)",
    ),
    negative_patterns=(
        r"role",
        r"permission",
        r"authorize",
        r"isAdmin",
        r"canAccess",
        r"checkAccess",
        r"isAuthorized",
    ),
    context_before=10,
    context_after=5,
)

SERVICE_ROLE_CLIENT_SIDE = LineRule(
    id="RBAC-002",
    title="Service Role Key or Admin Default in Client Code",
    description=(
        "Privileged service_role key exposed in client-side code, isAdmin set to "
        "true as default, or conditions that always grant admin access"
    ),
    category=ComplianceCategory.access_control,
    severity=Severity.critical,
    regulatory_reference=ACCESS_CONTROL_REFERENCE,
    recommendation=(
        "Remove service_role keys from client-side code; these should only exist in "
        "server-side API routes. Never default isAdmin to true. Implement proper role "
        "assignment based on authenticated user data from secure backend."
    ),
    extensions=RBAC_EXTENSIONS,
    skip_test_files=True,
    file_filter=is_client_side_file,
    patterns=(
        r"service_role",
        r"serviceRole",
        r"isAdmin\s*[:=]\s*true",
        r"""role\s*[:=]\s*['"`]admin['"`]""",
        r"admin\s*:\s*true",
        r"if\s*\(\s*true\s*\).*admin",
        r"""userId\s*===?\s*['"`]admin['"`]""",
        r"""email\s*===?\s*['"`]admin@""",
    ),
    negative_patterns=(
        r"getServerSideProps",
        r"getStaticProps",
        r"process\.env",
        r"describe\(",
    ),
    negative_scope=NegativeScope.file,
)

SELECT_ALL_PHI = LineRule(
    id="RBAC-003",
    title="SELECT * on PHI Tables Violates Minimum Necessary Principle",
    description=(
        'Query uses SELECT * or .select("*") on tables containing PHI, retrieving '
        "more data than necessary in violation of HIPAA minimum necessary principle"
    ),
    category=ComplianceCategory.access_control,
    severity=Severity.medium,
    regulatory_reference="45 CFR §164.502(b) - Minimum Necessary Requirement",
    recommendation=(
        "Select only the minimum necessary fields required for the operation. Example: "
        "instead of SELECT * FROM patients, use SELECT id, name, dob FROM patients."
    ),
    extensions=RBAC_EXTENSIONS,
    patterns=(
        r"SELECT\s+\*\s+FROM\s+" + _PHI_TABLES,
        r"""\.select\s*\(\s*['"`]\*['"`]\s*\)""",
        r"\.select\s*\(\s*\*\s*\)",
        r"\.findMany\s*\(\s*\{[^}]*\}\s*\)(?!.*select)",
        r"\.find\s*\(\s*\{[^}]*\}\s*\)(?!.*select)",
    ),
    negative_patterns=(
        r"""\.select\s*\(\s*['"`][a-zA-Z_,\s]+['"`]\s*\)""",
        r"SELECT\s+[a-zA-Z_,\s]+\s+FROM",
        r"select\s*:\s*\{",
        r"pick\s*\(",
        r"omit\s*\(",
    ),
)

RBAC_PACK_RULES: tuple[LineRule, ...] = (
    PHI_ACCESS_NO_AUTHZ,
    SERVICE_ROLE_CLIENT_SIDE,
    SELECT_ALL_PHI,
)
