"""Compliance scoring from active findings."""

import math

from .models import (
    ComplianceScore,
    Finding,
    PenaltyBreakdown,
    Severity,
    SeverityBreakdown,
)

# Points subtracted from 100 per active finding
SEVERITY_PENALTIES = {
    Severity.critical: 10,
    Severity.high: 5,
    Severity.medium: 2,
    Severity.low: 1,
    Severity.info: 0,
}

# Acknowledged findings still cost a quarter of their penalty
ACKNOWLEDGED_REDUCTION = 0.25


def compute_grade(score: int) -> str:
    if score >= 90:
        return "A"
    elif score >= 80:
        return "B"
    elif score >= 70:
        return "C"
    elif score >= 60:
        return "D"
    return "F"


def compute_status(score: int) -> str:
    if score >= 80:
        return "compliant"
    elif score >= 60:
        return "at-risk"
    return "critical"


def calculate_compliance_score(findings: list[Finding]) -> ComplianceScore:
    """Score the active findings: 100 minus severity penalties, clamped to 0-100.

    Baseline and suppressed findings are ignored even if passed in, so the
    result depends only on the active multiset.
    """
    breakdown = SeverityBreakdown()
    penalties = PenaltyBreakdown()

    for finding in findings:
        if finding.is_baseline or finding.suppressed:
            continue

        breakdown.total += 1
        setattr(breakdown, finding.severity.value, getattr(breakdown, finding.severity.value) + 1)

        penalty = float(SEVERITY_PENALTIES[finding.severity])
        if finding.acknowledged:
            breakdown.acknowledged += 1
            penalty *= ACKNOWLEDGED_REDUCTION

        if finding.severity != Severity.info:
            setattr(penalties, finding.severity.value, getattr(penalties, finding.severity.value) + penalty)
        penalties.total += penalty

    raw = max(0.0, min(100.0, 100.0 - penalties.total))
    # Half-up rounding
    score = int(math.floor(raw + 0.5))

    return ComplianceScore(
        score=score,
        grade=compute_grade(score),
        status=compute_status(score),
        breakdown=breakdown,
        penalties=penalties,
        recommendations=generate_recommendations(breakdown, score),
    )


def generate_recommendations(breakdown: SeverityBreakdown, score: int) -> list[str]:
    """Recommendations keyed on which severities are present."""
    recs = []

    if breakdown.critical > 0:
        recs.append(
            f"Address {breakdown.critical} critical issue(s) immediately; "
            "these pose severe HIPAA compliance risks"
        )

    if breakdown.high > 0:
        recs.append(f"Resolve {breakdown.high} high severity issue(s) as soon as possible")

    if breakdown.medium > 10:
        recs.append(
            f"Review and remediate {breakdown.medium} medium severity findings "
            "to improve compliance posture"
        )

    if breakdown.acknowledged > 0:
        recs.append(
            f"{breakdown.acknowledged} finding(s) are acknowledged but should still "
            "be addressed when possible"
        )

    if score < 70:
        recs.append(
            "Your compliance score is below acceptable levels. "
            "Consider a comprehensive security audit"
        )

    if score >= 90 and breakdown.total == 0:
        recs.append("Excellent! No active compliance issues found. Maintain regular scanning.")
    elif score >= 90:
        recs.append("Great compliance posture! Continue monitoring and maintaining best practices.")

    if not recs:
        recs.append("Continue regular scanning to maintain HIPAA compliance")

    return recs


def format_score(score: ComplianceScore) -> str:
    return f"{score.score}/100 ({score.grade}) - {score.status.upper()}"


def _points(value: float) -> str:
    return f"{value:g}"


def score_summary(score: ComplianceScore) -> str:
    """Plain-text multi-line summary of a score."""
    b = score.breakdown
    p = score.penalties
    lines = [
        f"HIPAA Compliance Score: {score.score}/100 (Grade {score.grade})",
        f"Status: {score.status.upper()}",
        "",
        "Findings Breakdown:",
        f"  Critical: {b.critical}",
        f"  High: {b.high}",
        f"  Medium: {b.medium}",
        f"  Low: {b.low}",
        f"  Total Active: {b.total}",
    ]
    if b.acknowledged > 0:
        lines.append(f"  Acknowledged: {b.acknowledged}")

    lines += [
        "",
        "Penalty Points:",
        f"  Critical: -{_points(p.critical)}",
        f"  High: -{_points(p.high)}",
        f"  Medium: -{_points(p.medium)}",
        f"  Low: -{_points(p.low)}",
        f"  Total: -{_points(p.total)}",
    ]
    return "\n".join(lines) + "\n"
