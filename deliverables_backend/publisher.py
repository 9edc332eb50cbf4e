from __future__ import annotations

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .config import DERIVED_PDF_DESCRIPTION, PDF_EXT
from .events import EventBus
from .models import Deliverable, DeliverableEvent, NewDeliverable
from .security import SandboxedPath
from .store import DeliverableStore


logger = logging.getLogger(__name__)

_HTML_SUFFIX_RE = re.compile(r"\.html?$", re.IGNORECASE)


def derive_pdf_title(source_title: str) -> str:
    """Strip a trailing .htm/.html from the source title and append .pdf."""
    return f"{_HTML_SUFFIX_RE.sub('', source_title or '')}{PDF_EXT}"


class KeyedLocks:
    """asyncio locks keyed by string, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ArtifactPublisher:
    """Record a rendered artifact exactly once and announce it.

    The find-or-insert step is serialized per canonical rendered path, so
    concurrent renders of the same source end with a single record. The
    render itself runs outside the lock.
    """

    def __init__(self, store: DeliverableStore, bus: EventBus) -> None:
        self.store = store
        self.bus = bus
        self._locks = KeyedLocks()

    async def publish(self, task_id: str, source: Deliverable, rendered: SandboxedPath) -> Deliverable:
        pdf_path = str(rendered.path)
        async with self._locks.hold(pdf_path):
            existing = self.store.find_by_path(task_id, "file", pdf_path)
            if existing is not None:
                logger.info("PDF deliverable already recorded for %s (%s)", pdf_path, existing.id)
                return existing

            created = self.store.insert(
                NewDeliverable(
                    task_id=task_id,
                    deliverable_type="file",
                    title=derive_pdf_title(source.title),
                    path=pdf_path,
                    description=DERIVED_PDF_DESCRIPTION,
                )
            )

        logger.info("Recorded PDF deliverable %s for task %s", created.id, task_id)
        self.bus.publish(DeliverableEvent(type="deliverable_added", payload=created))
        return created
