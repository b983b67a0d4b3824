import logging
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load .env file BEFORE importing settings to ensure env vars are available
# When running from backend/ directory
env_path = Path(__file__).parent.parent / ".env"
if not env_path.exists():
    # When running from root directory
    env_path = Path(__file__).parent.parent.parent / "backend" / ".env"

load_dotenv(dotenv_path=env_path, override=False)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.audio import audio_router
from .api.translate import router as translate_router
from .config import settings
from .services.asr_service import ASRService, build_asr_service
from .services.pipeline import TranslationPipeline, build_pipeline

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)-8s %(name)s %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info("[STARTUP] OPENAI_API_KEY present: %s", bool(settings.openai_api_key))
    yield
    # Shutdown - let pending history writes settle, then close HTTP clients
    pipeline: TranslationPipeline = app.state.pipeline
    await pipeline.history.drain()
    for service in (pipeline.translator, app.state.asr_service):
        close = getattr(service, "close", None)
        if close is not None:
            await close()


def create_app(
    pipeline: Optional[TranslationPipeline] = None,
    asr_service: Optional[ASRService] = None,
) -> FastAPI:
    app = FastAPI(title="Tarjama", version="0.1.0", lifespan=lifespan)
    app.state.pipeline = pipeline or build_pipeline()
    app.state.asr_service = asr_service or build_asr_service()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(translate_router, prefix="/api")
    app.include_router(audio_router, prefix="/api")

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
