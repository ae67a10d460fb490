"""Local filesystem token store.

Keeps the refresh token as a JSON file under the data root::

    {data_root}/oauth2/token.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path, so a power cut mid-write never leaves a
half-written token behind.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from functools import partial
from pathlib import Path

from anyio import to_thread
from loguru import logger
from pydantic import ValidationError

from leavenow.agent.models.oauth2 import StoredToken


class LocalTokenStore:
    """Local filesystem implementation of the TokenStore protocol."""

    def __init__(self, data_root: str | Path) -> None:
        self._path = Path(data_root) / "oauth2" / "token.json"

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> StoredToken | None:
        raw = await to_thread.run_sync(partial(_read_file, self._path))
        if not raw or not raw.strip():
            return None
        try:
            token = StoredToken.model_validate_json(raw)
        except ValidationError:
            logger.warning("Token store: ignoring unreadable token file {}", self._path)
            return None
        if not token.refresh_token.strip():
            return None
        return token

    async def write(self, token: StoredToken) -> None:
        data = token.model_dump_json(indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._path, data))
        logger.debug("Token store: refresh token written to {}", self._path)

    async def erase(self) -> None:
        await to_thread.run_sync(partial(_unlink, self._path))
        logger.debug("Token store: erased {}", self._path)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str | None:
    """Read file contents, or ``None`` if the file does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _unlink(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        path.unlink()
