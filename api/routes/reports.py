"""
Report rendering route

Serves the HTML dispute protection report for a report id issued by
``POST /api/jobs/{id}/report``.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CurrentUser
from auth.tokens import get_current_user
from core.db import get_session
from core.evidence import list_job_evidence
from core.jobs import get_owned_job
from core.logging import get_logger
from core.report import parse_report_id, render_report_html

logger = get_logger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/{report_id}", response_class=HTMLResponse)
async def get_report(
    report_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
) -> HTMLResponse:
    job_id = parse_report_id(report_id)
    job = await get_owned_job(session, current_user.id, job_id)
    evidence = await list_job_evidence(session, current_user.id, job_id, newest_first=False)

    html = render_report_html(job, evidence)
    logger.info("Report rendered", extra={"report_id": report_id, "evidence_count": len(evidence)})
    return HTMLResponse(content=html, headers={"Cache-Control": "no-cache"})
