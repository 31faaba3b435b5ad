"""
External Tool Support

Timeout-bounded invocation of external command-line tools (pdftotext and
friends) and a scoped scratch space for the temporary files they read and
write. Every file handed out by a ScratchSpace is removed when the scope
exits, whether the work succeeded, failed or raised.
"""

import asyncio
import logging
import secrets
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class ExternalToolError(RuntimeError):
    """An external tool is missing, timed out or exited with an error."""


def unique_name(stem: str, suffix: str) -> str:
    """Timestamp plus random suffix, safe under concurrent invocations."""
    return f"{stem}_{int(time.time() * 1000)}_{secrets.token_hex(4)}{suffix}"


async def run_command(args: Sequence[str], timeout: float) -> bytes:
    """
    Run an external command and return its standard output.

    Args:
        args: Program and arguments
        timeout: Seconds before the process is killed

    Returns:
        Raw stdout bytes

    Raises:
        ExternalToolError: if the program is missing, times out or exits nonzero
    """
    program = args[0]
    try:
        process = await asyncio.create_subprocess_exec(
            *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ExternalToolError(f"{program} is not available: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ExternalToolError(f"{program} timed out after {timeout}s")

    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()[:200]
        raise ExternalToolError(f"{program} exited with code {process.returncode}: {message}")
    return stdout


class ScratchSpace:
    """
    Private temporary directory whose files are deleted on scope exit.

    Usage:
        with ScratchSpace("ocr") as scratch:
            pdf_path = scratch.write_bytes(content, "source", ".pdf")
            ...
    """

    def __init__(self, prefix: str = "rfq"):
        self.prefix = prefix
        self.directory: Optional[Path] = None
        self._paths: List[Path] = []

    def __enter__(self) -> "ScratchSpace":
        self.directory = Path(tempfile.mkdtemp(prefix=f"{self.prefix}-"))
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def path(self, stem: str, suffix: str) -> Path:
        """Reserve a unique file path inside the scratch directory."""
        if self.directory is None:
            raise RuntimeError("ScratchSpace used outside of its scope")
        path = self.directory / unique_name(stem, suffix)
        self._paths.append(path)
        return path

    def track(self, path: Path) -> Path:
        """Register a file created by a tool so it is removed with the scope."""
        self._paths.append(Path(path))
        return Path(path)

    def write_bytes(self, content: bytes, stem: str, suffix: str) -> Path:
        path = self.path(stem, suffix)
        path.write_bytes(content)
        return path

    @property
    def tracked_paths(self) -> List[Path]:
        return list(self._paths)

    def cleanup(self):
        """Delete every tracked file, then the directory; failures are logged and skipped."""
        for path in self._paths:
            try:
                if path.exists():
                    path.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete temporary file {path}: {e}")
        self._paths = []

        if self.directory is not None:
            try:
                shutil.rmtree(self.directory)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove temporary directory {self.directory}: {e}")
            self.directory = None
