"""Tests for aggregation: suppression, acknowledgments, baseline, grouping, exit code."""

from conftest import make_finding
from vlayer_scanner.aggregator import aggregate, exit_code, normalize_title
from vlayer_scanner.baseline import (
    baseline_path,
    create_baseline,
    finding_signature,
    load_baseline,
    save_baseline,
)
from vlayer_scanner.config import AcknowledgedFinding
from vlayer_scanner.models import ComplianceCategory, Confidence, Severity
from vlayer_scanner.scan import scan_corpus
from vlayer_scanner.suppression import extract_suppressions, matches_rule_pattern


class TestInlineSuppression:
    """Test vlayer-ignore comments."""

    def test_comment_on_previous_line(self, now):
        contents = {"src/app.ts": "// vlayer-ignore enc-weak-md5 -- legacy checksum only\nconst h = md5(x);"}
        finding = make_finding(line=2)

        result = aggregate([finding], contents, now=now)

        assert result.findings[0].suppressed is True
        assert result.findings[0].suppression.reason == "legacy checksum only"
        assert result.active_findings == []
        assert result.compliance_score.score == 100

    def test_comment_on_same_line_python_form(self, now):
        contents = {"src/app.py": "h = md5(x)  # vlayer-ignore enc-* -- fixture data"}
        finding = make_finding(file="src/app.py", line=1)

        result = aggregate([finding], contents, now=now)
        assert result.findings[0].suppressed is True

    def test_missing_reason_does_not_suppress(self, now):
        contents = {"src/app.ts": "// vlayer-ignore enc-weak-md5\nconst h = md5(x);"}
        result = aggregate([make_finding(line=2)], contents, now=now)

        assert result.findings[0].suppressed is False
        assert len(result.active_findings) == 1

    def test_other_rule_not_suppressed(self, now):
        contents = {"src/app.ts": "// vlayer-ignore phi-* -- not relevant\nconst h = md5(x);"}
        result = aggregate([make_finding(line=2)], contents, now=now)
        assert result.findings[0].suppressed is False

    def test_rule_patterns(self):
        assert matches_rule_pattern("enc-weak-md5", "*")
        assert matches_rule_pattern("enc-weak-md5", "enc-*")
        assert matches_rule_pattern("enc-weak-md5", "enc-weak-md5")
        assert not matches_rule_pattern("enc-weak-md5", "phi-*")

    def test_extract_suppressions_keys_by_line(self):
        comments = extract_suppressions("a\n# vlayer-ignore x -- because\nb")
        assert list(comments) == [2]
        assert comments[2][0].reason == "because"

    def test_end_to_end_suppression(self):
        content = "// vlayer-ignore enc-weak-md5 -- cache key, not security\nconst hash = md5(password);\n"
        result = scan_corpus([("src/hash.ts", content)])

        assert result.raw_findings_count == 1
        assert result.active_findings == []


class TestAcknowledgments:
    """Test the accepted-risk registry."""

    def ack(self, **kwargs):
        fields = dict(
            pattern="src/**",
            id="enc-*",
            reason="Accepted for legacy integration",
            acknowledged_by="security@example.org",
            acknowledged_at="2026-01-01T00:00:00Z",
        )
        fields.update(kwargs)
        return AcknowledgedFinding(**fields)

    def test_acknowledged_finding_stays_active_with_reduced_penalty(self, now):
        result = aggregate([make_finding()], {}, acknowledgments=[self.ack()], now=now)
        finding = result.findings[0]

        assert finding.acknowledged is True
        assert finding.acknowledgment.acknowledged_by == "security@example.org"
        assert len(result.active_findings) == 1
        # high = 5 points, a quarter of that is 1.25
        assert result.compliance_score.score == 99
        assert result.compliance_score.breakdown.acknowledged == 1

    def test_expired_acknowledgment_reverted(self, now):
        ack = self.ack(expires_at="2026-02-01T00:00:00Z")
        result = aggregate([make_finding()], {}, acknowledgments=[ack], now=now)
        finding = result.findings[0]

        assert finding.acknowledged is False
        assert finding.acknowledgment.expired is True
        assert result.compliance_score.score == 95

    def test_filters_must_all_match(self, now):
        acks = [
            self.ack(pattern="lib/**"),
            self.ack(category=ComplianceCategory.phi_exposure),
            self.ack(severity=Severity.low),
            self.ack(id="phi-*"),
        ]
        result = aggregate([make_finding()], {}, acknowledgments=acks, now=now)
        assert result.findings[0].acknowledged is False

    def test_single_star_pattern_does_not_cross_directories(self, now):
        findings = [make_finding(file="src/h.ts"), make_finding(file="src/deep/h.ts")]
        result = aggregate(findings, {}, acknowledgments=[self.ack(pattern="src/*.ts")], now=now)

        flags = {f.file: f.acknowledged for f in result.findings}
        assert flags == {"src/deep/h.ts": False, "src/h.ts": True}
        # one full high penalty plus a quarter of another
        assert result.compliance_score.score == 94

    def test_globstar_pattern_reaches_nested_files(self, now):
        findings = [make_finding(file="src/deep/er/h.ts")]
        result = aggregate(findings, {}, acknowledgments=[self.ack(pattern="src/**/*.ts")], now=now)
        assert result.findings[0].acknowledged is True

    def test_camel_case_registry_entries(self):
        ack = AcknowledgedFinding.model_validate({
            "pattern": "**/*.ts",
            "reason": "ok",
            "acknowledgedBy": "me",
            "acknowledgedAt": "2026-01-01T00:00:00.000Z",
            "expiresAt": "2027-01-01",
        })
        assert ack.acknowledged_by == "me"
        assert ack.expires_at == "2027-01-01"


class TestBaseline:
    """Test baseline capture and matching."""

    def test_signature_ignores_line(self, now):
        baseline = create_baseline([make_finding(line=1)], now)
        result = aggregate([make_finding(line=40)], {}, baseline=baseline, now=now)

        assert result.findings[0].is_baseline is True
        assert result.active_findings == []
        assert result.baseline_stats.baseline == 1
        assert result.baseline_stats.new == 0

    def test_signature_is_stable(self):
        assert finding_signature("enc-weak-md5", "src/a.ts") == finding_signature("enc-weak-md5", "src/a.ts")
        assert len(finding_signature("enc-weak-md5", "src/a.ts")) == 16
        assert finding_signature("enc-weak-md5", "src/a.ts") != finding_signature("enc-weak-md5", "src/b.ts")

    def test_baseline_dedups_and_skips_suppressed(self, now):
        findings = [
            make_finding(line=1),
            make_finding(line=2),
            make_finding(rule_id="phi-ssn-hardcoded", line=3, suppressed=True),
        ]
        baseline = create_baseline(findings, now)

        assert len(baseline.findings) == 1
        assert baseline.created_at == "2026-03-01T12:00:00.000Z"

    def test_save_and_load(self, temp_dir, now):
        baseline = create_baseline([make_finding()], now)
        path = baseline_path(temp_dir)
        save_baseline(baseline, path)

        assert load_baseline(path) == baseline

    def test_missing_or_corrupt_baseline_is_none(self, temp_dir):
        path = baseline_path(temp_dir)
        assert load_baseline(path) is None

        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert load_baseline(path) is None

    def test_scenario_c(self):
        """Three baselined findings stay known; only the new one drives the exit code."""
        original = [
            ("src/a.ts", "const h = md5(data);"),
            ("src/b.ts", 'const ssn = "123-45-6789";'),
            ("src/c.ts", 'fetch("http://api.partner.com/records");'),
        ]
        first = scan_corpus(original)
        assert len(first.findings) == 3
        baseline = create_baseline(first.findings)

        second = scan_corpus(original + [("src/d.ts", 'const q = "SELECT * FROM patients";')], baseline=baseline)

        by_file = {f.file: f for f in second.findings}
        assert by_file["src/a.ts"].is_baseline
        assert by_file["src/b.ts"].is_baseline
        assert by_file["src/c.ts"].is_baseline
        assert not by_file["src/d.ts"].is_baseline
        assert by_file["src/d.ts"].severity == Severity.medium

        assert second.baseline_stats.new == 1
        assert second.baseline_stats.baseline == 3
        assert [f.file for f in second.active_findings] == ["src/d.ts"]
        assert exit_code(second, Severity.high) == 0
        assert exit_code(second, Severity.medium) == 1


class TestConfidenceAndOrdering:
    """Test confidence filtering, sorting and grouping."""

    def test_confidence_filter(self, now):
        findings = [
            make_finding(rule_id="phi-email-context", confidence=Confidence.medium, severity=Severity.medium),
            make_finding(),
        ]
        result = aggregate(findings, {}, min_confidence=Confidence.high, now=now)

        assert result.raw_findings_count == 2
        assert len(result.findings) == 2
        assert result.filtered_count == 1
        assert [f.rule_id for f in result.active_findings] == ["enc-weak-md5"]

    def test_deterministic_sort(self, now):
        findings = [
            make_finding(rule_id="low-b", file="b.ts", line=1, severity=Severity.low),
            make_finding(rule_id="crit", file="z.ts", line=9, severity=Severity.critical),
            make_finding(rule_id="low-a", file="a.ts", line=5, severity=Severity.low),
            make_finding(rule_id="low-a2", file="a.ts", line=2, severity=Severity.low),
        ]
        result = aggregate(findings, {}, now=now)
        assert [f.rule_id for f in result.findings] == ["crit", "low-a2", "low-a", "low-b"]

    def test_normalize_title(self):
        assert normalize_title("Found  12 Issues") == normalize_title("found 3 issues")

    def test_grouping_counts_match_raw(self, now):
        findings = [
            make_finding(file="a.ts", line=1, title="Weak hash 1"),
            make_finding(file="a.ts", line=7, title="Weak hash 2"),
            make_finding(file="b.ts", line=3, title="weak  hash"),
            make_finding(rule_id="phi-ssn-hardcoded", file="a.ts", line=2, severity=Severity.critical),
        ]
        result = aggregate(findings, {}, now=now)

        assert len(result.grouped_findings) == 2
        for group in result.grouped_findings:
            members = [
                f for f in result.findings
                if f.rule_id == group.rule_id and normalize_title(f.title) == normalize_title(group.title)
            ]
            assert group.occurrence_count == len(members)
            assert group.file_count == len({f.file for f in members})

        md5_group = next(g for g in result.grouped_findings if g.rule_id == "enc-weak-md5")
        assert md5_group.occurrence_count == 3
        assert md5_group.files == ["a.ts", "b.ts"]


class TestExitCode:
    """Test severity-threshold exit codes."""

    def test_thresholds(self, now):
        result = aggregate([make_finding(severity=Severity.medium)], {}, now=now)

        assert exit_code(result, Severity.high) == 0
        assert exit_code(result, Severity.medium) == 1
        assert exit_code(result, Severity.low) == 1

    def test_no_findings(self, now):
        assert exit_code(aggregate([], {}, now=now)) == 0

    def test_suppressed_findings_ignored(self, now):
        contents = {"src/app.ts": "const h = md5(x); // vlayer-ignore * -- reviewed"}
        result = aggregate([make_finding(severity=Severity.critical)], contents, now=now)
        assert exit_code(result, Severity.low) == 0
