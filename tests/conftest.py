import asyncio
import logging
from pathlib import Path

import pytest

from deliverables_backend.config import Settings
from deliverables_backend.events import EventBus
from deliverables_backend.publisher import ArtifactPublisher
from deliverables_backend.renderer import ArtifactRenderer
from deliverables_backend.reveal import HostRevealer
from deliverables_backend.security import PathSandbox
from deliverables_backend.service import DeliverableService
from deliverables_backend.store import DeliverableStore

logger = logging.getLogger(__name__)


class FakePdfEngine:
    """Stands in for headless Chromium: writes a tiny PDF and counts calls."""

    def __init__(self, delay: float = 0.0):
        self.calls = []
        self.delay = delay

    async def render_pdf(self, source: Path, destination: Path) -> None:
        self.calls.append((source, destination))
        if self.delay:
            await asyncio.sleep(self.delay)
        destination.write_bytes(b"%PDF-1.4\n% fake\n")


class FailingPdfEngine:
    def __init__(self, error: Exception):
        self.calls = 0
        self.error = error

    async def render_pdf(self, source: Path, destination: Path) -> None:
        self.calls += 1
        raise self.error


class HangingPdfEngine:
    """Never finishes on its own; records whether it was torn down."""

    def __init__(self):
        self.closed = False

    async def render_pdf(self, source: Path, destination: Path) -> None:
        try:
            await asyncio.sleep(3600)
        finally:
            self.closed = True


class SilentPdfEngine:
    """Claims success without writing anything."""

    async def render_pdf(self, source: Path, destination: Path) -> None:
        return None


@pytest.fixture
def shared_root(tmp_path):
    root = tmp_path / "shared"
    (root / "out").mkdir(parents=True)
    return root


@pytest.fixture
def outside_dir(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "hosts").write_text("127.0.0.1 localhost\n", encoding="utf-8")
    return outside


@pytest.fixture
def report_html(shared_root):
    path = shared_root / "out" / "report.html"
    path.write_text("<html><body><h1>Report</h1></body></html>", encoding="utf-8")
    return path


@pytest.fixture
def sandbox(shared_root):
    return PathSandbox([str(shared_root)])


@pytest.fixture
def store(tmp_path):
    return DeliverableStore(tmp_path / "db" / "deliverables.db")


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def received(bus):
    events = []
    bus.subscribe(events.append)
    return events


@pytest.fixture
def engine():
    return FakePdfEngine()


@pytest.fixture
def service(store, sandbox, bus, engine):
    return DeliverableService(
        store=store,
        sandbox=sandbox,
        renderer=ArtifactRenderer(sandbox, engine=engine, timeout_seconds=5),
        publisher=ArtifactPublisher(store, bus),
        bus=bus,
        revealer=HostRevealer(enabled=False),
    )


@pytest.fixture
def settings(tmp_path, shared_root):
    return Settings(
        workspace_base_path=str(shared_root),
        projects_path=str(shared_root / "projects"),
        home=None,
        db_path=tmp_path / "db" / "deliverables.db",
        render_timeout_seconds=5,
        reveal_enabled=False,
        log_level="DEBUG",
    )
