from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .errors import Forbidden, NotFound


logger = logging.getLogger(__name__)

_SEAL = object()


@dataclass(frozen=True)
class SandboxedPath:
    """A canonical, symlink-free path proven to lie inside a sandbox root.

    Only PathSandbox.resolve creates these. Readers, the renderer and the
    revealer accept this type rather than raw strings.
    """

    path: Path
    root: Path
    _seal: object = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Any trip through __init__ (direct call, dataclasses.replace) lands here unsealed.
        if self._seal is not _SEAL:
            raise TypeError("SandboxedPath can only be created by PathSandbox.resolve")

    @classmethod
    def _sealed(cls, path: Path, root: Path) -> "SandboxedPath":
        obj = cls.__new__(cls)
        object.__setattr__(obj, "path", path)
        object.__setattr__(obj, "root", root)
        object.__setattr__(obj, "_seal", _SEAL)
        return obj

    def __str__(self) -> str:
        return str(self.path)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def suffix(self) -> str:
        return self.path.suffix


def expand_home(raw_path: str, home: str | None) -> str:
    """Expand a leading ~ to the configured home.

    Without a home the path is left literal (it will then usually not exist
    and be rejected as NotFound). ~user forms are not expanded.
    """
    if not home:
        return raw_path
    if raw_path == "~" or raw_path.startswith("~/") or raw_path.startswith("~" + os.sep):
        return home + raw_path[1:]
    return raw_path


def is_contained(candidate: str, root: str) -> bool:
    """True when candidate equals root or is a strict descendant of it."""
    if candidate == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)


class PathSandbox:
    """Resolve client-supplied paths and enforce containment in the allow-list.

    Pure apart from the filesystem reads needed to resolve symlinks; no state
    is kept between calls, so roots created after startup are picked up.
    """

    def __init__(self, roots: Iterable[str], home: str | None = None) -> None:
        self.roots = list(roots)
        self.home = home

    def effective_roots(self) -> list[str]:
        """Canonicalize configured roots, dropping the ones missing on disk."""
        effective: list[str] = []
        for root in self.roots:
            if not root:
                continue
            expanded = os.path.normpath(os.path.abspath(expand_home(root, self.home)))
            if not os.path.exists(expanded):
                continue
            canonical = os.path.realpath(expanded)
            if canonical not in effective:
                effective.append(canonical)
        return effective

    def resolve(self, raw_path: str) -> SandboxedPath:
        if not isinstance(raw_path, str) or not raw_path.strip():
            raise NotFound("No file path given")

        normalized = os.path.normpath(os.path.abspath(expand_home(raw_path, self.home)))
        if not os.path.exists(normalized):
            raise NotFound("File not found")

        try:
            canonical = os.path.realpath(normalized, strict=True)
        except OSError:
            raise NotFound("Unable to resolve file path")

        roots = self.effective_roots()
        if not roots:
            logger.warning("Sandbox has no existing roots; rejecting all paths (configured: %s)", self.roots)
            raise Forbidden("Path is outside allowed directories")

        for root in roots:
            if is_contained(canonical, root):
                return SandboxedPath._sealed(Path(canonical), Path(root))

        logger.warning("Rejected path outside sandbox roots: %s", raw_path)
        raise Forbidden("Path is outside allowed directories")
