from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.schemas import HealthResponse

router = APIRouter()

SERVICE_NAME = "document-enhancement-api"
SERVICE_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(request: Request):
    """Degraded when OCR is missing; 503 when the batch queue is not running."""
    state = request.app.state
    adapter = getattr(state, "ocr_adapter", None)
    queue = getattr(state, "queue", None)
    corrector = getattr(state, "corrector", None)

    ocr_available = adapter is not None and adapter.is_available()
    healthy = ocr_available and queue is not None

    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        ocr_available=ocr_available,
        llm_enabled=corrector is not None,
        llm_circuits=corrector.breaker_states() if corrector is not None else [],
        queue=await queue.stats() if queue is not None else None,
    )
    return JSONResponse(
        status_code=200 if queue is not None else 503,
        content=body.model_dump(mode="json", by_alias=True),
    )
