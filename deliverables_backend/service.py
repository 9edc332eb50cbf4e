from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass

from .config import PREVIEWABLE_MEDIA_PREFIXES, PREVIEWABLE_MEDIA_TYPES, Settings
from .errors import InvalidInput, NotPreviewable, UnsupportedFormat
from .events import EventBus
from .models import Deliverable, DeliverableCreateRequest, DeliverableEvent, NewDeliverable
from .publisher import ArtifactPublisher
from .renderer import ArtifactRenderer, PdfEngine, is_html_path
from .reveal import HostRevealer
from .security import PathSandbox, SandboxedPath
from .store import DeliverableStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileTarget:
    """A sandboxed regular file plus how to deliver it."""

    source: SandboxedPath
    media_type: str
    filename: str


def guess_media_type(target: SandboxedPath) -> str:
    media_type, _ = mimetypes.guess_type(target.name)
    return media_type or "application/octet-stream"


def is_previewable(media_type: str) -> bool:
    return media_type.startswith(PREVIEWABLE_MEDIA_PREFIXES) or media_type in PREVIEWABLE_MEDIA_TYPES


class DeliverableService:
    """The boundary operations collaborators call; server.py maps them to HTTP."""

    def __init__(
        self,
        store: DeliverableStore,
        sandbox: PathSandbox,
        renderer: ArtifactRenderer,
        publisher: ArtifactPublisher,
        bus: EventBus,
        revealer: HostRevealer,
    ) -> None:
        self.store = store
        self.sandbox = sandbox
        self.renderer = renderer
        self.publisher = publisher
        self.bus = bus
        self.revealer = revealer

    @classmethod
    def from_settings(cls, settings: Settings, engine: PdfEngine | None = None) -> "DeliverableService":
        store = DeliverableStore(settings.db_path)
        sandbox = PathSandbox(settings.sandbox_roots, home=settings.home)
        bus = EventBus()
        return cls(
            store=store,
            sandbox=sandbox,
            renderer=ArtifactRenderer(sandbox, engine=engine, timeout_seconds=settings.render_timeout_seconds),
            publisher=ArtifactPublisher(store, bus),
            bus=bus,
            revealer=HostRevealer(enabled=settings.reveal_enabled),
        )

    def list_deliverables(self, task_id: str) -> list[Deliverable]:
        return self.store.list_for_task(task_id)

    def create_deliverable(self, task_id: str, payload: DeliverableCreateRequest) -> Deliverable:
        created = self.store.insert(
            NewDeliverable(
                task_id=task_id,
                deliverable_type=payload.deliverable_type,
                title=payload.title,
                path=payload.path,
                description=payload.description,
            )
        )
        self.bus.publish(DeliverableEvent(type="deliverable_added", payload=created))
        return created

    def _regular_file(self, raw_path: str) -> SandboxedPath:
        target = self.sandbox.resolve(raw_path)
        if not target.path.is_file():
            raise InvalidInput("Path is not a regular file")
        return target

    def preview_file(self, raw_path: str) -> FileTarget:
        target = self._regular_file(raw_path)
        media_type = guess_media_type(target)
        if not is_previewable(media_type):
            raise NotPreviewable(f"Inline preview is not available for {media_type}")
        return FileTarget(source=target, media_type=media_type, filename=target.name)

    def download_file(self, raw_path: str, raw: bool = False) -> FileTarget:
        target = self._regular_file(raw_path)
        media_type = "application/octet-stream" if raw else guess_media_type(target)
        return FileTarget(source=target, media_type=media_type, filename=target.name)

    async def reveal_file(self, raw_path: str) -> None:
        await self.revealer.reveal(self.sandbox.resolve(raw_path))

    async def render_to_pdf(self, task_id: str, deliverable_id: str) -> Deliverable:
        source = self.store.get(task_id, deliverable_id)
        logger.info("PDF requested for deliverable %s (task %s)", deliverable_id, task_id)
        if not source.path or source.deliverable_type != "file":
            raise InvalidInput("Deliverable is not a file path")
        if not is_html_path(source.path):
            raise UnsupportedFormat("PDF generation currently supports HTML deliverables only")

        sandboxed = self.sandbox.resolve(source.path)
        rendered = await self.renderer.render(sandboxed)
        return await self.publisher.publish(task_id, source, rendered)
