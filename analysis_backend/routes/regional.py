from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from analysis_backend.application import RegionalAnalysisService, ResultsNotAccepted
from analysis_backend.core.schema import RegionalAnalysisDefinition, TileResult
from analysis_backend.core.validation import ValidationError
from analysis_backend.workers.submitter import BackpressureError

router = APIRouter(prefix="/regional", tags=["regional"])


def get_analysis_service(request: Request) -> RegionalAnalysisService:
    return request.app.state.analysis


@router.post("")
async def create_regional_analysis(
    definition: RegionalAnalysisDefinition,
    service: RegionalAnalysisService = Depends(get_analysis_service),
) -> dict:
    """Queue a regional analysis; poll its status for progress."""
    try:
        job_id = service.submit(definition)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BackpressureError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    status = service.status(job_id)
    return {"jobId": job_id, "status": status.to_dict() if status else None}


@router.post("/results", status_code=202)
async def post_tile_result(
    result: TileResult,
    service: RegionalAnalysisService = Depends(get_analysis_service),
) -> dict:
    """Endpoint local workers post tile results to when the queue is in-process."""
    try:
        message_id = service.publish_result(result)
    except ResultsNotAccepted as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"messageId": message_id}


@router.get("")
async def list_regional_analyses(service: RegionalAnalysisService = Depends(get_analysis_service)) -> dict:
    return {"items": [status.to_dict() for status in service.list()]}


@router.get("/{job_id}")
async def get_regional_analysis_status(
    job_id: str,
    service: RegionalAnalysisService = Depends(get_analysis_service),
) -> dict:
    status = service.status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="job not found")
    return status.to_dict()


@router.delete("/{job_id}")
async def clear_regional_analysis(
    job_id: str,
    service: RegionalAnalysisService = Depends(get_analysis_service),
) -> dict:
    if not service.clear(job_id):
        raise HTTPException(status_code=404, detail="job not found")
    return {"jobId": job_id, "cleared": True}
