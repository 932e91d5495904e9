"""
Client approval API routes
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CurrentUser
from auth.tokens import get_current_user
from core.db import get_session
from core.evidence import approve_evidence, list_job_evidence
from core.logging import get_client_ip
from core.models import EvidenceRead, SignatureApproval, dump, dump_many

router = APIRouter(prefix="/api/approvals", tags=["approvals"])


@router.get("/{job_id}")
async def get_approvals(
    job_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Approved evidence for a job, newest first."""
    items = await list_job_evidence(session, current_user.id, job_id, approved_only=True)
    return {"success": True, "data": dump_many([EvidenceRead.model_validate(i) for i in items])}


@router.post("/signature")
async def post_signature(
    request: Request,
    payload: SignatureApproval,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """
    Capture the client's signature on one evidence item.

    Returns 409 if the item is already approved.
    """
    item = await approve_evidence(
        session,
        current_user.id,
        payload.evidence_id,
        signature=payload.signature,
        client_name=payload.client_name,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True, "data": dump(EvidenceRead.model_validate(item))}
