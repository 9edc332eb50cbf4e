from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


# deliverables_backend/ -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Sandbox roots. Both may use ~ shorthand; expansion happens in the sandbox.
DEFAULT_WORKSPACE_BASE_PATH = "~/Documents/Shared"
DEFAULT_PROJECTS_PATH = "~/Documents/Shared/projects"

# SQLite system of record for deliverables.
# Default: project-local ./data for easier inspection.
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "deliverables.db"

# Wall-clock cap on one HTML -> PDF render (navigation + network idle + layout).
DEFAULT_RENDER_TIMEOUT_SECONDS = 60.0

# Only these extensions may be rendered to PDF (matched case-insensitively).
HTML_EXTS = {".html", ".htm"}
PDF_EXT = ".pdf"
DERIVED_PDF_DESCRIPTION = "Generated from HTML deliverable"

# Inline preview is offered for these content types; everything else is download-only.
PREVIEWABLE_MEDIA_PREFIXES = ("text/", "image/")
PREVIEWABLE_MEDIA_TYPES = {"application/pdf", "application/json", "application/xml"}


def _env(name: str, default: str | None = None) -> str | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_flag(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() not in {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    workspace_base_path: str
    projects_path: str
    home: str | None
    db_path: Path
    render_timeout_seconds: float
    reveal_enabled: bool
    log_level: str

    @property
    def sandbox_roots(self) -> list[str]:
        return [self.workspace_base_path, self.projects_path]


def load_settings() -> Settings:
    """Read settings from the environment.

    Override with env vars WORKSPACE_BASE_PATH, PROJECTS_PATH, DELIVERABLES_DB_PATH,
    RENDER_TIMEOUT_SECONDS, REVEAL_ENABLED and LOG_LEVEL.
    """
    db_raw = _env("DELIVERABLES_DB_PATH")
    return Settings(
        workspace_base_path=_env("WORKSPACE_BASE_PATH", DEFAULT_WORKSPACE_BASE_PATH),
        projects_path=_env("PROJECTS_PATH", DEFAULT_PROJECTS_PATH),
        home=_env("HOME"),
        db_path=Path(db_raw) if db_raw else DEFAULT_DB_PATH,
        render_timeout_seconds=float(_env("RENDER_TIMEOUT_SECONDS", str(DEFAULT_RENDER_TIMEOUT_SECONDS))),
        reveal_enabled=_env_flag("REVEAL_ENABLED", True),
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
