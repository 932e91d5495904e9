"""
Dispute protection reports.

A report is rendered on demand from the job and its evidence; nothing about
it is stored. The report id encodes the job id and the generation time:

    report-{job_uuid}-{epoch_ms}

Example usage:
    from core.report import generate_report, render_report_html

    report = generate_report(job, evidence)
    html = render_report_html(job, evidence, report.generated_at)
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from fastapi.templating import Jinja2Templates

from core import config
from core.errors import ValidationError
from core.models_sql import EvidenceItem, Job
from core.scoring import describe_protection

REPORT_PREFIX = "report-"

templates = Jinja2Templates(directory=str(config.BASE_DIR / "web" / "templates"))


def strftime_filter(value, format_str="%d %B %Y"):
    """Format datetime or 'now' string with strftime."""
    if value is None:
        return "Not set"
    if value == "now":
        value = datetime.now(timezone.utc)
    elif isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime(format_str)


def currency_filter(value) -> str:
    return f"£{value:,.2f}"


templates.env.filters["strftime"] = strftime_filter
templates.env.filters["currency"] = currency_filter


@dataclass
class GeneratedReport:
    id: str
    url: str
    generated_at: datetime


def build_report_id(job_id: UUID, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{REPORT_PREFIX}{job_id}-{now_ms}"


def parse_report_id(report_id: str) -> UUID:
    """
    Recover the job id from a report id.

    Raises:
        ValidationError: If the id is not ``report-{uuid}-{epoch_ms}``
    """
    if not report_id or not report_id.startswith(REPORT_PREFIX):
        raise ValidationError("Invalid report ID", fields=["report_id"])

    job_part, _, stamp = report_id[len(REPORT_PREFIX):].rpartition("-")
    if not job_part or not stamp.isdigit():
        raise ValidationError("Invalid report ID", fields=["report_id"])

    try:
        return UUID(job_part)
    except ValueError:
        raise ValidationError("Invalid report ID", fields=["report_id"])


def generate_report(job: Job, evidence: Sequence[EvidenceItem]) -> GeneratedReport:
    """Issue report metadata; the HTML is rendered when the URL is fetched."""
    report_id = build_report_id(job.id)
    return GeneratedReport(
        id=report_id,
        url=f"{config.APP_URL}/api/reports/{report_id}",
        generated_at=datetime.now(timezone.utc),
    )


def group_by_category(evidence: Sequence[EvidenceItem]) -> Dict[str, List[EvidenceItem]]:
    """Group items by category, keeping categories in first-seen order."""
    groups: Dict[str, List[EvidenceItem]] = {}
    for item in evidence:
        category = getattr(item.evidence_type, "value", item.evidence_type)
        groups.setdefault(category, []).append(item)
    return groups


def build_report_context(job: Job, evidence: Sequence[EvidenceItem], generated_at: datetime) -> Dict[str, Any]:
    return {
        "job": job,
        "evidence_count": len(evidence),
        "evidence_groups": group_by_category(evidence),
        "protection": describe_protection(job.protection_status),
        "generated_at": generated_at,
    }


def render_report_html(job: Job, evidence: Sequence[EvidenceItem], generated_at: Optional[datetime] = None) -> str:
    """
    Render the dispute protection report.

    All job and evidence text is autoescaped by the template environment.
    """
    context = build_report_context(job, evidence, generated_at or datetime.now(timezone.utc))
    return templates.get_template("report.html").render(context)
