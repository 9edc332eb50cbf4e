from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse

from deliverables_backend.config import load_settings
from deliverables_backend.errors import DeliverableError, Internal, Unsupported
from deliverables_backend.events import QueueSubscription, format_sse
from deliverables_backend.logging_utils import configure_logging
from deliverables_backend.models import DeliverableCreateRequest, RevealRequest
from deliverables_backend.service import DeliverableService, FileTarget


logger = logging.getLogger("deliverables_backend.server")

# Seconds between SSE keep-alive comments on an idle event stream.
SSE_KEEPALIVE_SECONDS = 15.0

_LOCAL_HOSTS = {"127.0.0.1", "::1", "localhost"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    configure_logging(settings.log_level)
    # Tests (and embedders) may install a prebuilt service before startup.
    if getattr(app.state, "service", None) is None:
        app.state.service = DeliverableService.from_settings(settings)
        logger.info("Sandbox roots: %s", settings.sandbox_roots)
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeliverableError)
async def _deliverable_error_handler(request: Request, exc: DeliverableError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = Internal("Internal server error")
    return JSONResponse(status_code=err.status_code, content={"detail": err.message})


def _service(request: Request) -> DeliverableService:
    return request.app.state.service


def _is_local_request(request: Request) -> bool:
    host = getattr(request.client, "host", "") if request.client else ""
    return host in _LOCAL_HOSTS


def _file_response(target: FileTarget, disposition: str) -> FileResponse:
    # FileResponse sets content-length; nosniff keeps browsers on our content type.
    return FileResponse(
        target.source.path,
        media_type=target.media_type,
        filename=target.filename,
        content_disposition_type=disposition,
        headers={"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"},
    )


@app.get("/api/tasks/{task_id}/deliverables")
async def list_deliverables(task_id: str, request: Request) -> JSONResponse:
    items = _service(request).list_deliverables(task_id)
    return JSONResponse([d.model_dump(mode="json") for d in items])


@app.post("/api/tasks/{task_id}/deliverables")
async def create_deliverable(task_id: str, payload: DeliverableCreateRequest, request: Request) -> JSONResponse:
    created = _service(request).create_deliverable(task_id, payload)
    return JSONResponse(created.model_dump(mode="json"), status_code=201)


@app.post("/api/tasks/{task_id}/deliverables/{deliverable_id}/pdf")
async def render_pdf(task_id: str, deliverable_id: str, request: Request) -> JSONResponse:
    """Render an HTML deliverable to a sibling PDF and record it once."""
    deliverable = await _service(request).render_to_pdf(task_id, deliverable_id)
    return JSONResponse(
        {
            "success": True,
            "pdfPath": deliverable.path,
            "deliverable": deliverable.model_dump(mode="json"),
        }
    )


@app.get("/api/files/preview")
async def preview_file(path: str, request: Request) -> FileResponse:
    """Serve a sandboxed file inline; 415 tells the viewer to fall back to download."""
    target = _service(request).preview_file(path)
    return _file_response(target, "inline")


@app.get("/api/files/download")
async def download_file(path: str, request: Request, raw: bool = False) -> FileResponse:
    target = _service(request).download_file(path, raw=raw)
    return _file_response(target, "attachment")


@app.post("/api/files/reveal")
async def reveal_file(payload: RevealRequest, request: Request) -> JSONResponse:
    # Opening a file browser only makes sense on the machine the user sits at.
    if not _is_local_request(request):
        raise Unsupported("Revealing files is only available for local clients")
    await _service(request).reveal_file(payload.filePath)
    return JSONResponse({"ok": True})


@app.get("/api/events")
async def event_stream(request: Request) -> StreamingResponse:
    subscription = QueueSubscription(_service(request).bus)

    async def _events():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)
        finally:
            subscription.close()

    headers = {"Cache-Control": "no-store", "X-Accel-Buffering": "no"}
    return StreamingResponse(_events(), media_type="text/event-stream", headers=headers)


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    port = int(os.environ.get("PORT", "8010"))
    uvicorn.run("server:app", host="127.0.0.1", port=port, reload=False)
