import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from .background import StaleSessionReaper
from .config import Settings, settings as default_settings
from .errors import (
    ConfigurationError,
    SizeMismatchError,
    SizeOverflowError,
    StorageError,
    ValidationError,
)
from .models import FlowChunk, SessionProgress
from .service import FlowUploader

logger = logging.getLogger(__name__)


def get_uploader(request: Request) -> FlowUploader:
    return request.app.state.uploader


def get_reaper(request: Request) -> StaleSessionReaper:
    return request.app.state.reaper


def parse_chunk(params) -> FlowChunk:
    try:
        return FlowChunk.model_validate(dict(params))
    except PydanticValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors(include_url=False, include_context=False))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    uploader = FlowUploader.from_settings(settings)
    reaper = StaleSessionReaper(
        uploader.store,
        uploader.locks,
        interval=settings.CLEANUP_INTERVAL,
        timeout=settings.STALE_TIMEOUT,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper.start()
        yield
        logger.info("Shutting down...")
        await reaper.stop()

    app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.uploader = uploader
    app.state.reaper = reaper

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.post("/upload")
    async def upload_chunk(request: Request, uploader: FlowUploader = Depends(get_uploader)):
        form = await request.form()
        chunk = parse_chunk((key, value) for key, value in form.items() if key != "file")

        file = form.get("file")
        if not isinstance(file, UploadFile):
            raise HTTPException(status_code=400, detail="Can't access file field")
        payload = await file.read()

        try:
            path = await uploader.part_upload(chunk, payload)
        except (ValidationError, SizeMismatchError, SizeOverflowError) as e:
            logger.warning(f"Rejected chunk {chunk.identifier}:{chunk.chunk_number}: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except (ConfigurationError, StorageError) as e:
            logger.error(f"Failed to store chunk {chunk.identifier}:{chunk.chunk_number}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {"path": path}

    @app.get("/upload", response_class=PlainTextResponse)
    async def chunk_status(request: Request, uploader: FlowUploader = Depends(get_uploader)):
        chunk = parse_chunk(request.query_params)
        message, code = await uploader.part_status(chunk)
        return PlainTextResponse(message, status_code=code.value)

    @app.get("/upload/{identifier}/progress", response_model=SessionProgress)
    async def session_progress(identifier: str, uploader: FlowUploader = Depends(get_uploader)):
        try:
            progress = await uploader.progress(identifier)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if progress is None:
            raise HTTPException(status_code=404, detail="Upload session not found")
        return progress

    @app.post("/cleanup")
    async def trigger_cleanup(background_tasks: BackgroundTasks, reaper: StaleSessionReaper = Depends(get_reaper)):
        background_tasks.add_task(reaper.reap)
        return {"message": "Cleanup process started"}

    return app


app = create_app()
