from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from playwright.async_api import async_playwright

from .config import DEFAULT_RENDER_TIMEOUT_SECONDS, HTML_EXTS, PDF_EXT
from .errors import Forbidden, InvalidInput, NotFound, RenderFailure, UnsupportedFormat
from .security import PathSandbox, SandboxedPath


logger = logging.getLogger(__name__)


class PdfEngine(Protocol):
    async def render_pdf(self, source: Path, destination: Path) -> None:
        ...


class ChromiumPdfEngine:
    """Print a local HTML file to PDF with headless Chromium.

    One browser per call; it is closed on every exit path, including
    cancellation by the caller's timeout.
    """

    def __init__(self, navigation_timeout_seconds: float = DEFAULT_RENDER_TIMEOUT_SECONDS) -> None:
        self.navigation_timeout_ms = navigation_timeout_seconds * 1000

    async def render_pdf(self, source: Path, destination: Path) -> None:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True, args=["--no-sandbox"])
            try:
                page = await browser.new_page()
                await page.goto(source.as_uri(), wait_until="networkidle", timeout=self.navigation_timeout_ms)

                # Wait for web fonts if the document uses them.
                try:
                    await page.evaluate(
                        """async () => { if (document.fonts && document.fonts.ready) { await document.fonts.ready; } }"""
                    )
                except Exception:
                    logger.debug("Font readiness check failed for %s", source, exc_info=True)

                await page.pdf(path=str(destination), format="A4", print_background=True)
            finally:
                await browser.close()


def is_html_path(path: str | Path) -> bool:
    return Path(str(path)).suffix.lower() in HTML_EXTS


def derive_pdf_path(source: Path) -> Path:
    """Sibling path: same directory and base name, extension swapped for .pdf."""
    return source.with_suffix(PDF_EXT)


class ArtifactRenderer:
    """Turn a sandboxed HTML file into a sandboxed PDF sibling.

    Failures from the engine are normalized to RenderFailure and never retried.
    """

    def __init__(
        self,
        sandbox: PathSandbox,
        engine: PdfEngine | None = None,
        timeout_seconds: float = DEFAULT_RENDER_TIMEOUT_SECONDS,
    ) -> None:
        self.sandbox = sandbox
        self.engine = engine if engine is not None else ChromiumPdfEngine(timeout_seconds)
        self.timeout_seconds = timeout_seconds

    def _check_destination(self, destination: Path) -> None:
        """Refuse a destination outside the roots, or an existing one that is not a plain file."""
        self.sandbox.resolve(str(destination.parent))
        if not os.path.lexists(destination):
            return
        if os.path.islink(destination):
            logger.warning("Refusing to render over symlink %s", destination)
            raise Forbidden("PDF destination is a symbolic link")
        self.sandbox.resolve(str(destination))
        if not destination.is_file():
            raise InvalidInput("PDF destination exists and is not a regular file")

    async def render(self, source: SandboxedPath) -> SandboxedPath:
        if not isinstance(source, SandboxedPath):
            raise TypeError("render() needs a SandboxedPath")
        if not is_html_path(source.path):
            raise UnsupportedFormat("PDF generation currently supports HTML deliverables only")
        if not source.path.is_file():
            raise NotFound("Source file not found")

        destination = derive_pdf_path(source.path)
        self._check_destination(destination)

        # Each render writes its own temp file; os.replace renames over the destination entry.
        try:
            fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.stem}.", suffix=".pdf.part")
        except OSError as exc:
            raise RenderFailure(f"Cannot write PDF next to source: {exc}") from exc
        os.close(fd)
        staging = Path(tmp_name)
        logger.info("Rendering %s -> %s", source.path, destination)
        try:
            try:
                await asyncio.wait_for(
                    self.engine.render_pdf(source.path, staging),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error("Render timed out after %.0fs: %s", self.timeout_seconds, source.path)
                raise RenderFailure(f"PDF rendering timed out after {self.timeout_seconds:.0f}s")
            except Exception as exc:
                logger.exception("Render failed: %s", source.path)
                raise RenderFailure(f"Failed to generate PDF: {exc}") from exc

            if not staging.exists() or staging.stat().st_size == 0:
                raise RenderFailure("Renderer produced no output file")
            try:
                os.replace(staging, destination)
            except OSError as exc:
                raise RenderFailure(f"Cannot write PDF: {exc}") from exc
        finally:
            staging.unlink(missing_ok=True)

        try:
            rendered = self.sandbox.resolve(str(destination))
        except NotFound:
            raise RenderFailure("Renderer produced no output file")
        logger.info("Rendered %s", rendered.path)
        return rendered
