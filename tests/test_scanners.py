"""Tests for the rule packs, the scanner driver and the corpus walker."""

import importlib
import os

import pytest

from conftest import write_files
from vlayer_scanner.config import ScanConfig
from vlayer_scanner.errors import ConfigError
from vlayer_scanner.file_walker import corpus_from_pairs, matches_glob, walk_repo
from vlayer_scanner.models import (
    REPOSITORY_SENTINEL,
    ComplianceCategory,
    Granularity,
    Severity,
)
scan_module = importlib.import_module("vlayer_scanner.scan")
from vlayer_scanner.scan import scan, scan_corpus
from vlayer_scanner.scanners import CATEGORY_RULES, build_rule_set, builtin_rule_ids
from vlayer_scanner.scanners.audit import NO_LOGGING_FRAMEWORK, UNLOGGED_PHI_OPERATION
from vlayer_scanner.scanners.engine import run_rules
from vlayer_scanner.scanners.rules import LineRule, comment_mask, compile_pattern


def rule_ids(result):
    return {f.rule_id for f in result.findings}


class TestScenarioA:
    """A single weak hash call is the only finding."""

    def test_md5_password_hash(self):
        """Test that md5(password) yields exactly one high encryption finding."""
        result = scan_corpus([("src/hash.ts", "const hash = md5(password);\n")])

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.rule_id == "enc-weak-md5"
        assert finding.category == ComplianceCategory.encryption
        assert finding.severity == Severity.high
        assert "MD5" in finding.title
        assert finding.line == 1
        assert finding.fix_type == "weak-hash-md5"
        assert result.compliance_score.score == 95


class TestLineRuleHeuristics:
    """Test false-positive suppression in line rules."""

    def test_ssn_detected(self):
        result = scan_corpus([("src/a.ts", 'const ssn = "123-45-6789";')])
        assert "phi-ssn-hardcoded" in rule_ids(result)

    def test_comment_lines_skipped(self):
        """Test that comment-only lines are never matched."""
        ts = '// const ssn = "123-45-6789";\n/**\n * sha1(x)\n */\n/* md5(password) */\nexport const a = 1;\n'
        py = "# md5(password)\n    # sha1(x)\n"
        result = scan_corpus([("src/a.ts", ts), ("src/b.py", py)])
        assert result.findings == []

    def test_star_continuation_outside_block_is_code(self):
        content = "const rows = await sql`SELECT\n  * FROM patients`;\n"
        result = scan_corpus([("src/report.ts", content), ("db/report.sql", "SELECT\n* FROM patients;\n")])

        hits = [f for f in result.findings if f.rule_id == "access-select-star"]
        assert [(f.file, f.line) for f in hits] == [("db/report.sql", 2), ("src/report.ts", 2)]

    def test_hash_is_code_outside_hash_comment_languages(self):
        content = 'class Patient {\n  #ssn = "123-45-6789";\n}\n'
        result = scan_corpus([("src/patient.ts", content)])

        hits = [f for f in result.findings if f.rule_id == "phi-ssn-hardcoded"]
        assert [f.line for f in hits] == [2]

    def test_comment_mask(self):
        lines = ["/* start", "* SELECT", "end */", "* FROM x", "# note", "// note"]
        assert comment_mask(lines, ".ts") == [True, True, True, False, False, True]
        assert comment_mask(["# note", "/* x", "y"], ".py") == [True, False, False]

    def test_safe_http_domain_not_flagged(self):
        result = scan_corpus([("src/svg.ts", 'const ns = "http://www.w3.org/2000/svg";')])
        assert "enc-http-url" not in rule_ids(result)

    def test_localhost_http_not_flagged(self):
        result = scan_corpus([("src/dev.ts", 'const url = "http://localhost:3000/api";')])
        assert "enc-http-url" not in rule_ids(result)

    def test_plain_http_flagged(self):
        result = scan_corpus([("src/client.ts", 'fetch("http://api.partner.com/records");')])
        assert "enc-http-url" in rule_ids(result)

    def test_user_safe_domain_respected(self):
        config = ScanConfig(safe_http_domains=["api.partner.com"])
        result = scan_corpus([("src/client.ts", 'fetch("http://api.partner.com/records");')], config)
        assert "enc-http-url" not in rule_ids(result)

    def test_short_retention_flagged(self):
        result = scan_corpus([("src/policy.ts", "const policy = { deleteAfter: 30 days };")])
        assert "retention-short-retention" in rule_ids(result)

    def test_six_year_retention_not_flagged(self):
        result = scan_corpus([("src/policy.ts", "const policy = { deleteAfter: 2555 days };")])
        assert "retention-short-retention" not in rule_ids(result)

    def test_extension_filter(self):
        """Test that markdown files are not checked for weak hashing."""
        result = scan_corpus([("README.md", "Never call md5(password) in production")])
        assert "enc-weak-md5" not in rule_ids(result)

    def test_test_files_skip_password_rule(self):
        content = 'DB_PASSWORD = "supersecret123"\n'
        in_tests = scan_corpus([("tests/test_db.py", content)])
        in_src = scan_corpus([("src/db.py", content)])

        assert "security-hardcoded-password" not in rule_ids(in_tests)
        assert "security-hardcoded-password" in rule_ids(in_src)

    def test_finding_carries_context_and_pattern(self):
        content = "a = 1\nb = 2\nh = md5(x)\nc = 3\nd = 4\n"
        result = scan_corpus([("src/h.py", content)])
        finding = next(f for f in result.findings if f.rule_id == "enc-weak-md5")

        assert finding.line == 3
        assert [c.line_number for c in finding.context] == [1, 2, 3, 4, 5]
        assert [c.is_match for c in finding.context] == [False, False, True, False, False]
        assert finding.pattern is not None
        assert compile_pattern(finding.pattern, finding.pattern_flags).search("md5(x)")

    def test_window_too_large_rejected(self):
        with pytest.raises(ValueError):
            LineRule(
                id="x",
                title="x",
                description="x",
                category=ComplianceCategory.encryption,
                severity=Severity.low,
                recommendation="x",
                regulatory_reference="x",
                patterns=("x",),
                context_before=21,
            )

    def test_compile_pattern_cached(self):
        assert compile_pattern(r"md5\(") is compile_pattern(r"md5\(")


class TestGranularity:
    """Test line, file and repository rule dispatch."""

    def test_file_rule_reports_first_crud_line(self):
        content = (
            "export async function load(id) {\n"
            "  const patient = await db.find(id);\n"
            "  return patient;\n"
            "}\n"
        )
        result = scan_corpus([("src/patients.ts", content)])
        hits = [f for f in result.findings if f.rule_id == "audit-unlogged-phi-operation"]

        assert len(hits) == 1
        assert hits[0].line == 2
        assert "read operation" in hits[0].description

    def test_file_rule_satisfied_by_logging(self):
        content = (
            "export async function load(id) {\n"
            '  console.info("loading record");\n'
            "  const patient = await db.find(id);\n"
            "}\n"
        )
        result = scan_corpus([("src/patients.ts", content)])
        assert "audit-unlogged-phi-operation" not in rule_ids(result)

    def test_repository_rule_emits_single_sentinel_finding(self):
        pairs = [
            ("package.json", '{"dependencies": {"express": "^4.0.0"}}'),
            ("src/a.ts", "export const a = 1;"),
            ("src/b.ts", "export const b = 2;"),
        ]
        result = scan_corpus(pairs)
        hits = [f for f in result.findings if f.rule_id == "audit-no-framework"]

        assert len(hits) == 1
        assert hits[0].file == REPOSITORY_SENTINEL
        assert hits[0].line is None

    def test_repository_rule_satisfied_by_logger_dependency(self):
        pairs = [("package.json", '{"dependencies": {"winston": "^3.0.0"}}')]
        result = scan_corpus(pairs)
        assert "audit-no-framework" not in rule_ids(result)

    def test_rule_variants_expose_granularity(self):
        assert NO_LOGGING_FRAMEWORK.granularity == Granularity.repository
        assert UNLOGGED_PHI_OPERATION.granularity == Granularity.file
        assert CATEGORY_RULES[ComplianceCategory.phi_exposure][0].granularity == Granularity.line

    def test_run_rules_merges_in_corpus_order(self, config):
        pairs = [(f"src/f{i:02d}.ts", "const h = md5(x);") for i in range(12)]
        corpus = corpus_from_pairs(pairs, config)
        findings = run_rules(corpus, build_rule_set(config), config).findings

        assert [f.file for f in findings] == [f"src/f{i:02d}.ts" for i in range(12)]


def _explode_on_marker(match, line):
    if "BOOM" in line:
        raise RuntimeError("catastrophic input")
    return False


EXPLODING_RULE = LineRule(
    id="test-exploding",
    title="Explodes on one file",
    description="x",
    category=ComplianceCategory.encryption,
    severity=Severity.low,
    recommendation="x",
    regulatory_reference="x",
    patterns=(r"md5\(",),
    match_check=_explode_on_marker,
)


class TestFailureIsolation:
    """Test that one failing file never aborts the scan."""

    PAIRS = [
        ("src/a.ts", "const h = md5(x);"),
        ("src/bad.ts", "const h = md5(x); // BOOM"),
        ("src/c.ts", "const h = md5(y);"),
    ]

    def test_rule_error_skips_only_that_file(self, config):
        corpus = corpus_from_pairs(self.PAIRS, config)
        run = run_rules(corpus, build_rule_set(config) + [EXPLODING_RULE], config)

        assert [(f.file, f.rule_id) for f in run.findings if f.rule_id == "enc-weak-md5"] == [
            ("src/a.ts", "enc-weak-md5"),
            ("src/c.ts", "enc-weak-md5"),
        ]
        assert [s.file for s in run.skipped] == ["src/bad.ts"]
        assert run.skipped[0].rule_id == "test-exploding"
        assert "catastrophic input" in run.skipped[0].reason

    def test_scan_reports_skipped_files(self, monkeypatch):
        original = scan_module.build_rule_set
        monkeypatch.setattr(
            scan_module, "build_rule_set",
            lambda config, custom_rules=None: original(config, custom_rules) + [EXPLODING_RULE],
        )

        result = scan_corpus(self.PAIRS)

        assert result.scanned_files == 3
        assert [s.file for s in result.skipped_files] == ["src/bad.ts"]
        assert {f.file for f in result.findings} == {"src/a.ts", "src/c.ts"}
        assert result.compliance_score.score == 90

    def test_unreadable_files_skipped_by_walker(self, temp_dir):
        write_files(temp_dir, {"src/a.ts": "const h = md5(x);", "src/locked.ts": "const h = md5(x);"})
        (temp_dir / "src" / "latin1.ts").write_bytes(b"const h = md5(x); // caf\xe9")
        locked = temp_dir / "src" / "locked.ts"
        locked.chmod(0)
        try:
            can_still_read = os.access(locked, os.R_OK)
            result = scan(temp_dir, ScanConfig())
        finally:
            locked.chmod(0o644)

        expected = {"src/a.ts", "src/locked.ts"} if can_still_read else {"src/a.ts"}
        assert {f.file for f in result.findings} == expected
        assert result.scanned_files == len(expected)

    def test_non_utf8_pair_skipped(self):
        result = scan_corpus([("src/a.ts", "const h = md5(x);"), ("src/b.ts", b"const h = md5(x); // \xff")])

        assert result.scanned_files == 1
        assert [f.file for f in result.findings] == ["src/a.ts"]


class TestDeterminism:
    """Test that repeated scans agree."""

    def test_same_corpus_same_findings(self):
        pairs = [
            ("src/a.ts", 'const ssn = "123-45-6789";\nconst h = md5(x);\nfetch("http://api.example.net")'),
            ("src/b.py", 'DB_PASSWORD = "supersecret123"\n'),
            ("package.json", "{}"),
        ]
        first = scan_corpus(pairs, ScanConfig(max_workers=4))
        second = scan_corpus(list(reversed(pairs)), ScanConfig(max_workers=1))

        assert [f.id for f in first.findings] == [f.id for f in second.findings]
        assert first.compliance_score == second.compliance_score


class TestCorpusWalker:
    """Test file discovery and silent skipping of unusable files."""

    def test_binary_and_non_utf8_skipped(self, temp_dir):
        write_files(temp_dir, {"src/ok.ts": "const h = md5(x);"})
        (temp_dir / "src" / "blob.ts").write_bytes(b"md5(\x00\x01\x02")
        (temp_dir / "src" / "latin.ts").write_bytes(b"const h = md5(x); // \xff\xfe")

        corpus = walk_repo(temp_dir)
        assert [f.relative_path for f in corpus] == ["src/ok.ts"]

    def test_oversized_files_skipped(self, temp_dir):
        write_files(temp_dir, {"src/big.ts": "x" * 100, "src/small.ts": "x"})
        corpus = walk_repo(temp_dir, ScanConfig(max_file_size=10))
        assert [f.relative_path for f in corpus] == ["src/small.ts"]

    def test_skip_dirs_and_excludes(self, temp_dir):
        write_files(temp_dir, {
            "node_modules/lib/index.js": "md5(x)",
            "generated/out.ts": "md5(x)",
            "src/app.ts": "md5(x)",
        })
        config = ScanConfig(exclude=["generated/**"])
        corpus = walk_repo(temp_dir, config)
        assert [f.relative_path for f in corpus] == ["src/app.ts"]

    def test_default_excludes_at_any_depth(self, temp_dir):
        write_files(temp_dir, {
            "packages/web/dist/bundle.js": "md5(x)",
            "coverage/lcov.js": "md5(x)",
            "src/distance.ts": "md5(x)",
        })
        corpus = walk_repo(temp_dir, ScanConfig())
        assert [f.relative_path for f in corpus] == ["src/distance.ts"]

    @pytest.mark.parametrize("path, pattern, expected", [
        ("src/a.ts", "src/*.ts", True),
        ("src/deep/a.ts", "src/*.ts", False),
        ("src/deep/a.ts", "src/**/*.ts", True),
        ("src/a.ts", "src/**/*.ts", True),
        ("a.ts", "**/*.ts", True),
        ("src/deep/a.ts", "src/**", True),
        ("srcx/a.ts", "src/**", False),
        ("lib/a.ts", "src/**", False),
        ("src/a.js", "src/?.js", True),
        ("src/ab.js", "src/?.js", False),
        ("src/a.tsx", "src/*.{ts,tsx}", True),
        ("src/a.jsx", "src/*.{ts,tsx}", False),
        ("src/v1.ts", "src/v[0-9].ts", True),
        ("src/a/b/c/node_modules/x/y.js", "**/node_modules/**", True),
        ("a+b/(c).ts", "a+b/(c).ts", True),
    ])
    def test_glob_segments(self, path, pattern, expected):
        assert matches_glob(path, pattern) is expected

    def test_glob_dot_segments(self):
        assert matches_glob("src/.env", "src/*")
        assert not matches_glob("src/.env", "src/*", dot=False)
        assert not matches_glob(".config/app.ts", "**/*.ts", dot=False)
        assert matches_glob(".config/app.ts", ".config/*.ts", dot=False)

    def test_ignore_paths(self, temp_dir):
        write_files(temp_dir, {"src/legacy/old.ts": "md5(x)", "src/app.ts": "md5(x)"})
        corpus = walk_repo(temp_dir, ScanConfig(ignore_paths=["legacy"]))
        assert [f.relative_path for f in corpus] == ["src/app.ts"]

    def test_scan_directory(self, temp_dir):
        write_files(temp_dir, {"src/hash.ts": "const hash = md5(password);\n"})
        result = scan(temp_dir, ScanConfig())

        assert result.scanned_files == 1
        assert [f.rule_id for f in result.findings] == ["enc-weak-md5"]
        assert result.findings[0].file == "src/hash.ts"


class TestExtendedPacks:
    """Test opt-in rule packs."""

    def test_packs_off_by_default(self):
        result = scan_corpus([("src/hash.ts", "const hash = md5(password);")])
        assert "CRED-001" not in rule_ids(result)

    def test_credentials_pack_weak_password_hash(self):
        config = ScanConfig(extended_packs=["credentials"])
        result = scan_corpus([("src/hash.ts", "const hash = md5(password);")], config)
        assert "CRED-001" in rule_ids(result)

    def test_weak_hash_needs_password_context(self):
        config = ScanConfig(extended_packs=["credentials"])
        result = scan_corpus([("src/digest.ts", "const digest = md5(contentHash);")], config)
        assert "CRED-001" not in rule_ids(result)

    def test_placeholder_credentials_ignored(self):
        config = ScanConfig(extended_packs=["credentials"])
        placeholder = scan_corpus([("src/cfg.ts", 'const password = "your-password-here";')], config)
        real = scan_corpus([("src/cfg.ts", 'const password = "Xk9#mPq2vL";')], config)

        assert "CRED-002" not in rule_ids(placeholder)
        assert "CRED-002" in rule_ids(real)

    def test_rbac_service_role_in_client_file(self):
        config = ScanConfig(extended_packs=["rbac"])
        client = scan_corpus([("src/components/Admin.tsx", "const isAdmin = true;")], config)
        guarded = scan_corpus(
            [("src/components/Admin.tsx", "const isAdmin = true;\nconst key = process.env.KEY;")],
            config,
        )

        assert "RBAC-002" in rule_ids(client)
        assert "RBAC-002" not in rule_ids(guarded)

    def test_pack_respects_categories(self):
        config = ScanConfig(
            extended_packs=["credentials"],
            categories=[ComplianceCategory.phi_exposure],
        )
        result = scan_corpus([("src/hash.ts", "const hash = md5(password);")], config)
        assert result.findings == []

    def test_unknown_pack_rejected(self):
        with pytest.raises(ConfigError):
            scan_corpus([("src/a.ts", "x")], ScanConfig(extended_packs=["nope"]))


class TestCustomRules:
    """Test custom rule validation and evaluation."""

    VALID = {
        "id": "phi-todo",
        "name": "PHI TODO left in code",
        "description": "A TODO mentions patient data.",
        "category": "phi-exposure",
        "severity": "low",
        "pattern": "TODO.*patient",
        "recommendation": "Resolve the TODO.",
        "hipaaReference": "§164.530(c)",
    }

    def test_valid_rule_fires(self):
        config = ScanConfig(custom_rules=[self.VALID])
        result = scan_corpus([("src/a.ts", 'const note = "TODO: patient intake";')], config)

        hits = [f for f in result.findings if f.rule_id == "phi-todo"]
        assert len(hits) == 1
        assert hits[0].regulatory_reference == "§164.530(c)"
        assert result.rule_errors == []

    def test_invalid_rules_reported_not_raised(self):
        bad_regex = dict(self.VALID, id="bad-regex", pattern="(")
        bad_id = dict(self.VALID, id="Bad_ID")
        duplicate = dict(self.VALID, id="enc-weak-md5")
        config = ScanConfig(custom_rules=[bad_regex, bad_id, duplicate, self.VALID])

        result = scan_corpus([("src/a.ts", 'const note = "TODO: patient intake";')], config)

        assert {e.rule_id for e in result.rule_errors} == {"bad-regex", "Bad_ID", "enc-weak-md5"}
        assert "phi-todo" in rule_ids(result)

    def test_must_not_contain_on_line(self):
        rule = dict(self.VALID, mustNotContain="ticket")
        config = ScanConfig(custom_rules=[rule])
        result = scan_corpus([("src/a.ts", 'const note = "TODO: patient intake ticket-12";')], config)
        assert "phi-todo" not in rule_ids(result)

    def test_must_not_contain_uses_rule_flags(self):
        line = [("src/a.ts", 'const note = "TODO: patient intake ticket-12";')]
        case_sensitive = ScanConfig(custom_rules=[dict(self.VALID, flags="g", mustNotContain="TICKET")])
        insensitive = ScanConfig(custom_rules=[dict(self.VALID, flags="gi", mustNotContain="TICKET")])

        assert "phi-todo" in rule_ids(scan_corpus(line, case_sensitive))
        assert "phi-todo" not in rule_ids(scan_corpus(line, insensitive))

    def test_include_glob(self):
        rule = dict(self.VALID, include=["src/**"])
        config = ScanConfig(custom_rules=[rule])
        result = scan_corpus([
            ("src/a.ts", 'const note = "TODO: patient";'),
            ("lib/b.ts", 'const note = "TODO: patient";'),
        ], config)

        assert {f.file for f in result.findings if f.rule_id == "phi-todo"} == {"src/a.ts"}

    def test_single_star_glob_stays_in_directory(self):
        rule = dict(self.VALID, include=["src/*.ts"], exclude=["src/*.gen.ts"])
        config = ScanConfig(custom_rules=[rule])
        result = scan_corpus([
            ("src/a.ts", 'const note = "TODO: patient";'),
            ("src/api.gen.ts", 'const note = "TODO: patient";'),
            ("src/deep/b.ts", 'const note = "TODO: patient";'),
            ("src/deep/c.gen.ts", 'const note = "TODO: patient";'),
        ], config)

        assert {f.file for f in result.findings if f.rule_id == "phi-todo"} == {"src/a.ts"}

    def test_builtin_ids_unique(self):
        all_rules = [r for rules in CATEGORY_RULES.values() for r in rules]
        assert len({r.id for r in all_rules}) == len(all_rules)
        assert "CRED-001" in builtin_rule_ids()
