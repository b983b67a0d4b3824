import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ..services.errors import UpstreamServiceError, ValidationError
from ..services.pipeline import TranslationPipeline

logger = logging.getLogger(__name__)


class TranslateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    room_id: Optional[str] = Field(None, alias="roomId")


class TranslateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    cached: bool
    processing_time: float = Field(..., alias="processingTime")
    filtered: Optional[bool] = None


class MetricsResponse(BaseModel):
    pipeline: Dict[str, Any]


router = APIRouter(tags=["translate"])


def get_pipeline(request: Request) -> TranslationPipeline:
    return request.app.state.pipeline


async def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, authenticated upstream and forwarded as X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id


@router.post("/translate", response_model=TranslateResponse, response_model_exclude_none=True)
async def translate(
    payload: TranslateRequest,
    user_id: str = Depends(get_user_id),
    pipeline: TranslationPipeline = Depends(get_pipeline),
) -> TranslateResponse:
    try:
        outcome = await pipeline.translate(payload.text, user_id=user_id, room_id=payload.room_id)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except UpstreamServiceError as exc:
        logger.error("Translation failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Translation provider error: {exc}",
        ) from exc
    except Exception as exc:
        logger.exception("Translation crashed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error processing translation: {exc}",
        ) from exc

    return TranslateResponse(
        text=outcome.text,
        cached=outcome.cached,
        processing_time=outcome.processing_time_ms,
        filtered=outcome.filtered,
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(pipeline: TranslationPipeline = Depends(get_pipeline)) -> MetricsResponse:
    """Get translation pipeline statistics."""
    return MetricsResponse(pipeline=pipeline.get_stats())
