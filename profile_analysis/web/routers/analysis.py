"""Analysis API — single-profile and bulk scoring endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from profile_analysis.bulk.orchestrator import BulkAnalysisOrchestrator
from profile_analysis.errors import AnalysisError
from profile_analysis.identifiers import generate_request_id
from profile_analysis.models import BulkAnalysisRequest, SingleAnalysisRequest
from profile_analysis.single import SingleProfileAnalyzer
from profile_analysis.web.deps import get_orchestrator, get_single_analyzer

logger = logging.getLogger(__name__)
router = APIRouter(tags=["analysis"])


def standard_response(
    success: bool,
    request_id: str,
    data: dict | None = None,
    error: str | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """Wrap every payload in the shared {success, data, error, timestamp, requestId} envelope."""
    body = {
        "success": success,
        "data": data,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "requestId": request_id,
    }
    return JSONResponse(status_code=status_code, content=body)


@router.post("/analyze")
async def analyze_profile(
    req: SingleAnalysisRequest,
    analyzer: SingleProfileAnalyzer = Depends(get_single_analyzer),
):
    request_id = generate_request_id()
    logger.info("[%s] Analysis request received", request_id)
    try:
        result = await analyzer.analyze(req, request_id)
    except AnalysisError as e:
        logger.warning("[%s] Analysis rejected (%d): %s", request_id, e.status_code, e)
        return standard_response(False, request_id, error=str(e), status_code=e.status_code)
    except Exception:
        logger.exception("[%s] Analysis request failed", request_id)
        return standard_response(False, request_id, error="Internal server error", status_code=500)
    return standard_response(True, request_id, data=result.model_dump(mode="json"))


@router.post("/analyze/bulk")
async def analyze_bulk(
    req: BulkAnalysisRequest,
    orchestrator: BulkAnalysisOrchestrator = Depends(get_orchestrator),
):
    request_id = generate_request_id()
    logger.info("[%s] Bulk analysis request received", request_id)
    try:
        result = await orchestrator.run(req, request_id)
    except AnalysisError as e:
        logger.warning("[%s] Bulk analysis rejected (%d): %s", request_id, e.status_code, e)
        return standard_response(False, request_id, error=str(e), status_code=e.status_code)
    except Exception:
        logger.exception("[%s] Bulk analysis request failed", request_id)
        return standard_response(False, request_id, error="Internal server error", status_code=500)
    return standard_response(True, request_id, data=result.model_dump(mode="json"))
