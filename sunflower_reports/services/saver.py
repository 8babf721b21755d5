"""The single "save bytes as a named file" seam used by every exporter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class FileSaver(Protocol):
    async def save(self, filename: str, data: bytes, media_type: str) -> str:
        ...


class DirectorySaver:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _write(self, filename: str, data: bytes) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Export names are fixed patterns; strip any directory component anyway.
        target = (self.directory / Path(filename).name).resolve()
        target.write_bytes(data)
        return target

    async def save(self, filename: str, data: bytes, media_type: str) -> str:
        path = await asyncio.to_thread(self._write, filename, data)
        logger.info("file_saved", path=str(path), media_type=media_type, bytes=len(data))
        return str(path)


@dataclass
class SavedFile:
    filename: str
    data: bytes
    media_type: str


class MemorySaver:
    """Headless saver. Keeps the last payload written under each filename."""

    def __init__(self) -> None:
        self.saved: dict[str, SavedFile] = {}

    async def save(self, filename: str, data: bytes, media_type: str) -> str:
        self.saved[filename] = SavedFile(filename=filename, data=data, media_type=media_type)
        return filename
