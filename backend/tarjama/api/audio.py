import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from pydantic import BaseModel, Field

from ..services.asr_service import ASRService
from ..services.errors import ASRServiceError

logger = logging.getLogger(__name__)


audio_router = APIRouter(tags=["audio"])


class TranscribeAudioResponse(BaseModel):
    text: str = Field(..., description="Transcript text, empty when silence or hallucination was detected")


def get_asr_service(request: Request) -> ASRService:
    return request.app.state.asr_service


@audio_router.post("/transcribe", response_model=TranscribeAudioResponse)
async def transcribe_audio(
    file: UploadFile = File(...),
    asr_service: ASRService = Depends(get_asr_service),
) -> TranscribeAudioResponse:
    audio_bytes = await file.read()
    if not audio_bytes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Audio file is empty.")

    logger.info(f"Processing file: {file.filename}, size: {len(audio_bytes)} bytes")

    try:
        result = await asr_service.transcribe(
            audio_bytes,
            filename=file.filename or "audio.webm",
            content_type=file.content_type or "audio/webm",
        )
    except ASRServiceError as exc:
        logger.error("ASR transcription failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Error processing audio") from exc

    return TranscribeAudioResponse(text=result.text)
