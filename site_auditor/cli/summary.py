"""Human-readable and JSON rendering of audit results."""

import json
from pathlib import Path
from typing import Any, Dict, List

from ..audit.models import AuditResult, AuditStatus, IssueSeverity
from ..audit.ranking import RankingRecord


SEVERITY_ICONS = {
    IssueSeverity.CRITICAL: "🔴",
    IssueSeverity.ERROR: "🟠",
    IssueSeverity.WARNING: "🟡",
    IssueSeverity.INFO: "🔵",
}


def format_summary(result: AuditResult, top_issues: int = 10) -> str:
    """Render a short text report of an audit."""
    lines: List[str] = []
    if result.status == AuditStatus.FAILED:
        lines.append(f"❌ Audit of {result.site_url} failed: {result.failure_reason}")
    else:
        lines.append(f"✅ Audit of {result.site_url} completed")

    summary = result.issues_summary
    lines.append(f"   Pages analyzed: {result.pages_analyzed}")
    lines.append(f"   Elapsed:        {result.elapsed}")
    lines.append(
        f"   Issues:         {summary.total} "
        f"(critical {summary.critical}, errors {summary.error}, "
        f"warnings {summary.warning}, info {summary.info})"
    )
    if result.pages:
        average = sum(page.score for page in result.pages) / len(result.pages)
        lines.append(f"   Average score:  {average:.0f}/100")

    counts: Dict[str, int] = {}
    severities: Dict[str, IssueSeverity] = {}
    for issue in result.all_issues:
        counts[issue.type] = counts.get(issue.type, 0) + 1
        severities[issue.type] = issue.severity
    if counts:
        lines.append("")
        lines.append("Most frequent issues:")
        ranked = sorted(counts.items(), key=lambda item: (severities[item[0]].rank, -item[1], item[0]))
        for issue_type, count in ranked[:top_issues]:
            icon = SEVERITY_ICONS.get(severities[issue_type], "")
            lines.append(f"   {icon} {issue_type}: {count}")
    return "\n".join(lines)


def format_rankings(records: List[RankingRecord]) -> str:
    lines = []
    for record in records:
        if record.found:
            lines.append(f"#{record.rank:<4} {record.keyword}  ({record.url})")
        else:
            lines.append(f"{'-':<5} {record.keyword}  (not in checked results)")
    return "\n".join(lines)


def write_json(result: AuditResult, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.model_dump_json(indent=2), encoding="utf-8")


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)
