"""
FastAPI layer exposing U2-Net background removal.

Endpoints:
 - GET /
 - GET /health
 - POST /rembg   (standard model, 320px)
 - POST /remove  (medium model, 1024px)

Uploads are read from the multipart form field `sig`; results are
returned as base64-encoded RGBA PNGs.
"""

from __future__ import annotations

import base64
from contextlib import asynccontextmanager
import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse

from . import config
from .pipeline import BackgroundRemover

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    remover = BackgroundRemover(settings=settings)
    app.state.remover = remover
    if settings.prefetch_on_startup:
        remover.prefetch("standard")
    yield


app = FastAPI(title="U2-Net Background Removal Service", version="0.1.0", lifespan=lifespan)


def get_remover(request: Request) -> BackgroundRemover:
    remover = getattr(request.app.state, "remover", None)
    if remover is None:
        remover = BackgroundRemover(settings=settings)
        request.app.state.remover = remover
    return remover


def _failure(status_code: int, msg: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "msg": msg})


async def _handle_upload(sig: Optional[UploadFile], remover: BackgroundRemover, variant: str):
    if sig is None:
        return _failure(400, "No file was uploaded")

    start = time.perf_counter()
    image_bytes = await sig.read()
    if not image_bytes:
        return _failure(400, "No file was uploaded")

    try:
        png_bytes = await remover.process_image_bytes(image_bytes, variant=variant)
    except ValueError as ve:
        logger.warning("Rejected %s upload: %s", variant, ve)
        return _failure(400, str(ve))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Background removal failed: %s", exc)
        return _failure(500, "Error processing image")

    payload = base64.b64encode(png_bytes).decode("ascii")
    logger.info("took %.3fs to process (%s)", time.perf_counter() - start, variant)
    return {"success": True, "payload": payload}


@app.get("/", response_class=PlainTextResponse)
def index():
    return "Welcome to image background removal app"


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/rembg")
async def rembg(
    sig: Optional[UploadFile] = File(None),
    remover: BackgroundRemover = Depends(get_remover),
):
    return await _handle_upload(sig, remover, "standard")


@app.post("/remove")
async def remove(
    sig: Optional[UploadFile] = File(None),
    remover: BackgroundRemover = Depends(get_remover),
):
    return await _handle_upload(sig, remover, "medium")
