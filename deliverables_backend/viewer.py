"""Client side of the preview/download negotiation.

A viewer never touches the filesystem; it only decides which server
endpoint to open for a deliverable:

- url deliverables open directly as external links (no sandboxing)
- "open" checks the preview endpoint and falls back to raw download
- "preview" goes straight to the preview endpoint (known-good HTML)
- "reveal" asks the server to show the file; failure is a soft notice
- "generate PDF" renders HTML deliverables, then reloads the list
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import quote

import httpx

from .errors import RenderFailure, UnsupportedFormat
from .models import Deliverable
from .renderer import is_html_path


logger = logging.getLogger(__name__)

IntentKind = Literal["noop", "external", "preview", "download"]

REVEAL_NOTICE = "Could not reveal file location on this server."


@dataclass(frozen=True)
class ViewerIntent:
    kind: IntentKind
    url: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class RevealOutcome:
    ok: bool
    notice: Optional[str] = None


def preview_url(path: str) -> str:
    return f"/api/files/preview?path={quote(path, safe='')}"


def download_url(path: str) -> str:
    return f"/api/files/download?path={quote(path, safe='')}&raw=true"


def can_generate_pdf(deliverable: Deliverable) -> bool:
    return deliverable.deliverable_type == "file" and bool(deliverable.path) and is_html_path(deliverable.path or "")


class DeliverableViewer:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def list_deliverables(self, task_id: str) -> list[Deliverable]:
        res = await self.client.get(f"/api/tasks/{quote(task_id, safe='')}/deliverables")
        res.raise_for_status()
        return [Deliverable.model_validate(item) for item in res.json()]

    async def open(self, deliverable: Deliverable) -> ViewerIntent:
        if not deliverable.path:
            return ViewerIntent(kind="noop")
        if deliverable.deliverable_type == "url":
            return ViewerIntent(kind="external", url=deliverable.path)

        target = preview_url(deliverable.path)
        fallback = download_url(deliverable.path)
        try:
            async with self.client.stream("GET", target) as check:
                if check.is_success:
                    return ViewerIntent(kind="preview", url=target)
        except httpx.HTTPError as exc:
            logger.warning("Preview check failed for %s: %s", deliverable.path, exc)
        return ViewerIntent(kind="download", url=fallback)

    def preview(self, deliverable: Deliverable) -> ViewerIntent:
        if not deliverable.path:
            return ViewerIntent(kind="noop")
        return ViewerIntent(
            kind="preview",
            url=preview_url(deliverable.path),
            title=deliverable.title or "Preview",
        )

    async def reveal(self, deliverable: Deliverable) -> RevealOutcome:
        if not deliverable.path:
            return RevealOutcome(ok=True)
        try:
            res = await self.client.post("/api/files/reveal", json={"filePath": deliverable.path})
        except httpx.HTTPError as exc:
            logger.warning("Reveal request failed for %s: %s", deliverable.path, exc)
            return RevealOutcome(ok=False, notice=REVEAL_NOTICE)
        if not res.is_success:
            return RevealOutcome(ok=False, notice=REVEAL_NOTICE)
        return RevealOutcome(ok=True)

    async def generate_pdf(self, task_id: str, deliverable: Deliverable) -> list[Deliverable]:
        if not can_generate_pdf(deliverable):
            raise UnsupportedFormat("PDF generation currently supports HTML deliverables only")

        url = f"/api/tasks/{quote(task_id, safe='')}/deliverables/{quote(deliverable.id, safe='')}/pdf"
        try:
            res = await self.client.post(url)
        except httpx.HTTPError as exc:
            raise RenderFailure(f"Failed to generate PDF: {exc}") from exc
        if not res.is_success:
            try:
                body = res.json()
            except ValueError:
                body = None
            detail = body.get("detail") if isinstance(body, dict) else None
            raise RenderFailure(detail or "Failed to generate PDF")

        return await self.list_deliverables(task_id)
