"""FastAPI service for the Compliance Lens scanner."""

from __future__ import annotations

import asyncio
import io
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response
from PIL import Image, UnidentifiedImageError

from compliance_lens.models.history import HistoryItem
from compliance_lens.scanner import ComplianceScanner, build_scanner
from compliance_lens.utils.config import Config
from compliance_lens.utils.errors import ComplianceLensError, ErrorType, ScanInProgressError
from compliance_lens.utils.geometry import draw_overlay, overlay_boxes
from compliance_lens.utils.logging import setup_logging
from compliance_lens.utils.report_builder import (
    build_report_html,
    report_filename,
    summarize_history_item,
)


APP_TITLE = "Compliance Lens - AI-Assisted Code Compliance Scanner"
ALLOWED_IMAGE_TYPES = {"png", "jpg", "jpeg", "webp", "gif", "bmp", "tiff", "heic"}
MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "20"))

STATUS_CODES: Dict[ErrorType, int] = {
    ErrorType.CAPTURE_FAILED: 400,
    ErrorType.SCAN_IN_PROGRESS: 409,
    ErrorType.QUOTA_EXCEEDED: 429,
    ErrorType.CONFIG_MISSING: 503,
    ErrorType.INVALID_CREDENTIAL: 503,
    ErrorType.STORAGE_FAILED: 503,
    ErrorType.MODEL_UNAVAILABLE: 502,
    ErrorType.RESPONSE_INVALID: 502,
    ErrorType.ANALYSIS_FAILED: 500,
    ErrorType.CONFIG_INVALID: 500,
    ErrorType.INITIALIZATION_FAILED: 500,
}

logger = logging.getLogger(__name__)


def status_for(error: ComplianceLensError) -> int:
    return STATUS_CODES.get(error.error_type, 500)


def _history_payload(item: HistoryItem) -> Dict[str, Any]:
    payload = item.to_dict()
    payload["overlay"] = {
        violation_id: box.to_dict() if box else None
        for violation_id, box in overlay_boxes(item.result).items()
    }
    return payload


def _render_overlay_png(item: HistoryItem, active_id: Optional[str]) -> bytes:
    with Image.open(io.BytesIO(item.image.data)) as img:
        preview = draw_overlay(img, item.result, active_id=active_id)
    buffer = io.BytesIO()
    preview.convert("RGB").save(buffer, format="PNG")
    return buffer.getvalue()


def _extension_allowed(filename: Optional[str]) -> bool:
    if not filename or "." not in filename:
        return True
    return filename.rsplit(".", 1)[1].lower() in ALLOWED_IMAGE_TYPES


def create_app(
    config: Optional[Config] = None,
    scanner: Optional[ComplianceScanner] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Loaded configuration; read from config.yaml when omitted
        scanner: Pre-built scanner (used by tests); built from config otherwise

    Returns:
        FastAPI app whose lifespan opens and closes the evidence store
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active_scanner = scanner
        if active_scanner is None:
            active_config = config or Config.load(os.getenv("COMPLIANCE_LENS_CONFIG", "config.yaml"))
            setup_logging(
                level=active_config.logging.level,
                log_format=active_config.logging.format,
                log_file=active_config.logging.file,
            )
            active_scanner = build_scanner(active_config)

        await active_scanner.store.open()
        app.state.scanner = active_scanner
        app.state.scan_lock = asyncio.Lock()
        logger.info("Compliance Lens service started")
        try:
            yield
        finally:
            await active_scanner.store.close()
            logger.info("Compliance Lens service stopped")

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)

    @app.exception_handler(ComplianceLensError)
    async def handle_compliance_error(request: Request, exc: ComplianceLensError) -> JSONResponse:
        status_code = status_for(exc)
        logger.error(f"{request.method} {request.url.path} failed ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.user_message,
                "error_type": exc.error_type.value,
                "recoverable": exc.context.recoverable,
            },
        )

    def _scanner(request: Request) -> ComplianceScanner:
        return request.app.state.scanner

    async def _get_item(request: Request, item_id: str) -> HistoryItem:
        item = await _scanner(request).store.get(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Inspection not found.")
        return item

    @app.post("/api/scans")
    async def create_scan(request: Request, image: UploadFile = File(...)) -> JSONResponse:
        if not _extension_allowed(image.filename):
            raise HTTPException(status_code=400, detail=f"{image.filename} is not a supported image type.")

        data = await image.read()
        if not data:
            raise HTTPException(status_code=400, detail=f"{image.filename or 'upload'} is empty.")
        if len(data) > MAX_FILE_SIZE_MB * 1024 * 1024:
            raise HTTPException(
                status_code=400,
                detail=f"{image.filename} exceeds the per-file limit of {MAX_FILE_SIZE_MB} MB.",
            )

        lock: asyncio.Lock = request.app.state.scan_lock
        if lock.locked():
            raise ScanInProgressError.create()

        async with lock:
            active = _scanner(request)
            prepared = await asyncio.to_thread(active.prepare, data)
            outcome = await active.analyze(prepared)

        return JSONResponse(
            {
                "result": outcome.result.to_dict(),
                "item": _history_payload(outcome.item) if outcome.item else None,
                "saved": outcome.item is not None,
                "image": {
                    "width": prepared.width,
                    "height": prepared.height,
                    "normalized": prepared.normalized,
                    "size_bytes": prepared.size_bytes,
                },
                "history": [summarize_history_item(entry) for entry in outcome.history],
            }
        )

    @app.get("/api/history")
    async def list_history(request: Request) -> JSONResponse:
        items = await _scanner(request).history()
        return JSONResponse({"items": [summarize_history_item(item) for item in items]})

    @app.delete("/api/history")
    async def clear_history(request: Request, confirm: bool = Query(False)) -> JSONResponse:
        if not confirm:
            raise HTTPException(status_code=400, detail="Pass confirm=true to delete all inspections.")
        items = await _scanner(request).clear_history()
        return JSONResponse({"items": [summarize_history_item(item) for item in items]})

    @app.get("/api/history/{item_id}")
    async def history_detail(request: Request, item_id: str) -> JSONResponse:
        item = await _get_item(request, item_id)
        return JSONResponse(_history_payload(item))

    @app.get("/api/history/{item_id}/overlay")
    async def history_overlay(
        request: Request,
        item_id: str,
        active: Optional[str] = Query(None),
    ) -> Response:
        item = await _get_item(request, item_id)
        try:
            png = await asyncio.to_thread(_render_overlay_png, item, active)
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Cannot render overlay for {item_id}: {e}")
            raise HTTPException(status_code=422, detail="Stored image cannot be decoded.")
        return Response(content=png, media_type="image/png")

    @app.get("/api/history/{item_id}/report", response_class=HTMLResponse)
    async def history_report(request: Request, item_id: str) -> HTMLResponse:
        item = await _get_item(request, item_id)
        generated_at = datetime.now(timezone.utc)
        html = build_report_html(item.result, item.image, generated_at)
        return HTMLResponse(
            content=html,
            headers={"Content-Disposition": f'attachment; filename="{report_filename(generated_at)}"'},
        )

    @app.get("/healthz")
    async def healthcheck(request: Request) -> Dict[str, Any]:
        return {"status": "ok", "history_available": _scanner(request).store.is_open}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
