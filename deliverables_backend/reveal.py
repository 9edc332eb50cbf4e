from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys

from .errors import Unsupported
from .security import SandboxedPath


logger = logging.getLogger(__name__)

# How long to wait for the file-browser launcher to hand off.
REVEAL_WAIT_SECONDS = 10.0


def reveal_command(target: SandboxedPath, platform: str = sys.platform) -> list[str]:
    path = str(target.path)
    if platform == "darwin":
        return ["open", "-R", path]
    if platform == "win32":
        return ["explorer", f"/select,{path}"]
    # xdg-open cannot select a file; open its folder instead.
    folder = path if target.path.is_dir() else str(target.path.parent)
    return ["xdg-open", folder]


class HostRevealer:
    """Best-effort "show in file browser" on the machine running the server.

    Remote and headless deployments usually have no desktop; every such case
    is reported as Unsupported, never as a server error.
    """

    def __init__(self, enabled: bool = True, platform: str = sys.platform) -> None:
        self.enabled = enabled
        self.platform = platform

    async def reveal(self, target: SandboxedPath) -> None:
        if not self.enabled:
            raise Unsupported("Revealing files is disabled on this server")
        if self.platform.startswith("linux") and not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
            raise Unsupported("No desktop session available on this server")

        cmd = reveal_command(target, self.platform)
        if shutil.which(cmd[0]) is None:
            raise Unsupported(f"{cmd[0]} is not available on this server")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.warning("Reveal launch failed for %s: %s", target.path, exc)
            raise Unsupported("Could not reveal file location on this server")

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=REVEAL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            # Launcher is still running; the file browser is most likely up.
            logger.info("Reveal launcher still running for %s", target.path)
            return

        # explorer.exe exits with 1 even on success.
        if returncode != 0 and self.platform != "win32":
            logger.warning("Reveal command %s exited with %s", cmd[0], returncode)
            raise Unsupported("Could not reveal file location on this server")
        logger.info("Revealed %s", target.path)
