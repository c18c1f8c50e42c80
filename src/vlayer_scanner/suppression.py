"""Inline ``vlayer-ignore`` comments and acknowledged-risk registry matching."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .config import AcknowledgedFinding
from .file_walker import matches_glob
from .models import Acknowledgment, Finding, Suppression
from .timestamps import parse_iso

# `// vlayer-ignore <rule-pattern> -- <reason>` or the `#` comment form
SUPPRESSION_RE = re.compile(r"(?://|#)\s*vlayer-ignore\s+([a-zA-Z0-9\-*]+)\s+--\s+(.+)")
SUPPRESSION_NO_REASON_RE = re.compile(r"(?://|#)\s*vlayer-ignore\s+([a-zA-Z0-9\-*]+)\s*$")


@dataclass(frozen=True)
class SuppressionComment:
    line: int
    rule_pattern: str
    reason: str


def extract_suppressions(content: str) -> dict[int, list[SuppressionComment]]:
    """Suppression comments keyed by 1-indexed line number.

    Comments without a reason are kept with an empty reason; such a comment
    never suppresses.
    """
    found: dict[int, list[SuppressionComment]] = {}
    for index, line in enumerate(content.split("\n")):
        match = SUPPRESSION_RE.search(line)
        if match:
            comment = SuppressionComment(index + 1, match.group(1), match.group(2).strip())
        else:
            bare = SUPPRESSION_NO_REASON_RE.search(line)
            if not bare:
                continue
            comment = SuppressionComment(index + 1, bare.group(1), "")
        found.setdefault(index + 1, []).append(comment)
    return found


def matches_rule_pattern(rule_id: str, pattern: str) -> bool:
    """Exact id, '*' or a '*'-wildcard pattern such as 'phi-*'."""
    if pattern == "*" or pattern == rule_id:
        return True
    regex = "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"
    return re.match(regex, rule_id) is not None


def find_suppression(finding: Finding, comments: dict[int, list[SuppressionComment]]) -> Optional[Suppression]:
    """Suppression for a finding from the line before it, then its own line."""
    if finding.line is None:
        return None

    for line_number in (finding.line - 1, finding.line):
        for comment in comments.get(line_number, []):
            if not matches_rule_pattern(finding.rule_id, comment.rule_pattern):
                continue
            if not comment.reason:
                return None
            return Suppression(
                reason=comment.reason,
                comment=f"// vlayer-ignore {comment.rule_pattern} -- {comment.reason}",
            )
    return None


def apply_inline_suppressions(findings: list[Finding], contents: dict[str, str]) -> list[Finding]:
    """Mark findings silenced by inline comments; ``contents`` maps file -> text."""
    cache: dict[str, dict[int, list[SuppressionComment]]] = {}
    result: list[Finding] = []

    for finding in findings:
        content = contents.get(finding.file)
        if content is None or finding.line is None:
            result.append(finding)
            continue
        if finding.file not in cache:
            cache[finding.file] = extract_suppressions(content)

        suppression = find_suppression(finding, cache[finding.file])
        if suppression is None:
            result.append(finding)
        else:
            result.append(finding.model_copy(update={"suppressed": True, "suppression": suppression}))

    return result


def match_acknowledgment(finding: Finding, registry: list[AcknowledgedFinding]) -> Optional[AcknowledgedFinding]:
    """First registry entry whose file glob, id, category and severity all match."""
    for ack in registry:
        if not matches_glob(finding.file, ack.pattern, dot=False):
            continue
        if ack.id and not re.search(re.escape(ack.id).replace(r"\*", ".*"), finding.rule_id):
            continue
        if ack.category and ack.category != finding.category:
            continue
        if ack.severity and ack.severity != finding.severity:
            continue
        return ack
    return None


def apply_acknowledgments(
    findings: list[Finding],
    registry: list[AcknowledgedFinding],
    now: datetime,
) -> list[Finding]:
    """Attach acknowledgments; an expired one is kept for reporting but reverted."""
    if not registry:
        return findings

    result: list[Finding] = []
    for finding in findings:
        ack = match_acknowledgment(finding, registry)
        if ack is None:
            result.append(finding)
            continue

        expired = ack.expires_at is not None and parse_iso(ack.expires_at) < now
        acknowledgment = Acknowledgment(
            reason=ack.reason,
            acknowledged_by=ack.acknowledged_by,
            acknowledged_at=ack.acknowledged_at,
            ticket_url=ack.ticket_url,
            expires_at=ack.expires_at,
            expired=expired,
        )
        result.append(finding.model_copy(update={
            "acknowledged": not expired,
            "acknowledgment": acknowledgment,
        }))

    return result
