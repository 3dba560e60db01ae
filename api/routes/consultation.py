"""Consultation, milestone and recovery API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.schemas.consultation import (
    ConsultationRequest,
    ConsultationResponse,
    MilestoneRequest,
    RecoveryRequest,
    SimilarCaseRequest,
    SimilarCaseResponse,
)
from consilium.exceptions import (
    ConsultationFailed,
    RecoveryAlreadyCompleted,
    SessionNotFound,
    SessionNotReady,
)
from consilium.models import (
    ConsultationSession,
    MilestoneReport,
    RecoveryOutcome,
    RecoveryStatistics,
    SessionStatus,
)
from consilium.orchestrator import ConsultationOrchestrator


logger = logging.getLogger(__name__)

router = APIRouter()


def get_orchestrator(request: Request) -> ConsultationOrchestrator:
    """The orchestrator built at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="OPENROUTER_API_KEY not configured")
    return orchestrator


def to_response(session: ConsultationSession) -> ConsultationResponse:
    """Map a session's internal status to the externally visible one."""
    if session.status == SessionStatus.FAILED:
        return ConsultationResponse(
            success=False,
            status="failed",
            fingerprint=session.fingerprint,
            session_id=session.session_id,
            session=session,
            responded_specialists=session.responded_specialists(),
            error=session.error,
        )
    completed = session.status in (SessionStatus.SYNTHESIZED, SessionStatus.MONITORING)
    return ConsultationResponse(
        success=True,
        status="success" if completed else "processing",
        fingerprint=session.fingerprint,
        session_id=session.session_id,
        session=session,
        responded_specialists=session.responded_specialists(),
    )


@router.post("/consultation", response_model=ConsultationResponse)
async def create_consultation(
    request: ConsultationRequest,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """
    Consult on a case.

    Fast mode answers with the triage result (status ``processing``) and
    keeps working in the background; poll ``GET /consultation/{fingerprint}``.
    """
    case = request.case.to_case()
    try:
        session = await orchestrator.consult(
            case,
            mode=request.mode,
            requested_specialists=request.requested_specialists or None,
            use_cache=not request.no_cache,
        )
    except ConsultationFailed as exc:
        body = ConsultationResponse(
            success=False,
            status="failed",
            fingerprint=case.fingerprint(),
            session_id=exc.session.session_id if exc.session else None,
            session=exc.session,
            responded_specialists=exc.responded_specialists,
            error=str(exc),
        )
        return JSONResponse(status_code=502, content=body.model_dump(mode="json"))

    return to_response(session)


@router.get("/consultation/{fingerprint}", response_model=ConsultationResponse)
async def get_consultation(
    fingerprint: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """Current state of the consultation for a case fingerprint."""
    session = await orchestrator.get_by_fingerprint(fingerprint)
    if session is None:
        raise HTTPException(status_code=404, detail="Consultation not found or expired")
    return to_response(session)


@router.delete("/consultation/{fingerprint}")
async def cancel_consultation(
    fingerprint: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Stop background work for a case. Opinions already recorded are kept."""
    return {"fingerprint": fingerprint, "cancelled": orchestrator.cancel(fingerprint)}


@router.get("/session/{session_id}", response_model=ConsultationResponse)
async def get_session(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    try:
        session = await orchestrator.get_session(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return to_response(session)


@router.post("/milestone", response_model=MilestoneReport)
async def record_milestone(
    request: MilestoneRequest,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """Evaluate progress at a checkpoint against the session's plan."""
    try:
        return await orchestrator.record_milestone(request.to_report())
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionNotReady as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/recovery", response_model=RecoveryOutcome)
async def complete_recovery(
    request: RecoveryRequest,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """Close recovery tracking for a session with its final outcome."""
    try:
        return await orchestrator.complete_recovery(request.to_outcome())
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (SessionNotReady, RecoveryAlreadyCompleted) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/recovery/statistics", response_model=RecoveryStatistics)
async def recovery_statistics(
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.recovery_statistics()


@router.post("/consultation/similar", response_model=SimilarCaseResponse)
async def find_similar(
    request: SimilarCaseRequest,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
):
    """Completed consultation of a similar earlier case, for reference."""
    match = await orchestrator.find_similar(request.case.to_case(), request.threshold)
    if match is None:
        return SimilarCaseResponse(found=False)
    return SimilarCaseResponse(
        found=True,
        similarity=match.similarity,
        match_details=match.breakdown.as_dict(),
        session=match.session,
    )


@router.get("/cache/stats")
async def cache_stats(
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"entries": len(orchestrator.cache), **orchestrator.cache.stats.as_dict()}
