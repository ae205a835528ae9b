"""
Room Archive Writer.

Persists completed interviews (room document, answers, final summary) to
JSON files so review pages keep working when the live store no longer
holds the room.

Thread Safety:
    Writes replace the whole file. Concurrent writes for the same room are
    last-writer-wins; the service only archives a room once, on completion.

Last Grunted: 10/15/2026
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import ValidationError

from .models import InterviewMaterial


__all__ = ["ArchiveReadError", "ArchiveWriteError", "RoomArchiveWriter"]


logger = logging.getLogger(__name__)


class ArchiveWriteError(Exception):
    """Raised when writing an archive fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write to {path}: {cause}")


class ArchiveReadError(Exception):
    """Raised when reading an archive fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read from {path}: {cause}")


def _format_utc_timestamp() -> str:
    """Return current UTC timestamp as ISO 8601 string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RoomArchiveWriter:
    """
    Writes interview archives to JSON files.

    Output files are named: {room_id}_interview.json

    Example:
        >>> writer = RoomArchiveWriter(Path("./archive"))
        >>> await writer.write_archive(material)
        >>> restored = await writer.load_archive("k3v9x2m1qa")
    """

    def __init__(self, archive_dir: Path) -> None:
        """
        Initialize the archive writer.

        Args:
            archive_dir: Directory where archive JSON files will be written.
                         Created if it doesn't exist.
        """
        self.archive_dir = Path(archive_dir)
        self._ensure_archive_dir()

    def _ensure_archive_dir(self) -> None:
        """
        Create archive directory if it doesn't exist.

        Raises:
            ArchiveWriteError: If directory creation fails.
        """
        try:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
            logger.debug("Archive directory ready: %s", self.archive_dir)
        except OSError as e:
            raise ArchiveWriteError(self.archive_dir, e) from e

    def _get_archive_path(self, room_id: str) -> Path:
        """Get the archive file path for a room."""
        return self.archive_dir / f"{room_id}_interview.json"

    async def write_archive(self, material: InterviewMaterial) -> Path:
        """
        Write a complete interview archive.

        Overwrites any existing archive for this room.

        Args:
            material: Room, answers and final summary to persist.

        Returns:
            Path to the written file.

        Raises:
            ArchiveWriteError: If file write fails.
        """
        archive_path = self._get_archive_path(material.room.room_id)

        data = material.model_dump(mode="json", by_alias=True)
        data["_meta"] = {
            "written_at": _format_utc_timestamp(),
            "version": "1.0",
        }

        try:
            async with aiofiles.open(archive_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
        except OSError as e:
            raise ArchiveWriteError(archive_path, e) from e

        logger.info("Archived room %s to %s", material.room.room_id, archive_path)
        return archive_path

    async def load_archive(self, room_id: str) -> Optional[InterviewMaterial]:
        """
        Load an archived interview.

        Args:
            room_id: The room token.

        Returns:
            InterviewMaterial if an archive exists, None otherwise.

        Raises:
            ArchiveReadError: If file read fails or contains invalid JSON/data.
        """
        archive_path = self._get_archive_path(room_id)

        if not archive_path.exists():
            logger.debug("No archive found for room %s", room_id)
            return None

        try:
            async with aiofiles.open(archive_path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except json.JSONDecodeError as e:
            raise ArchiveReadError(archive_path, e) from e
        except OSError as e:
            raise ArchiveReadError(archive_path, e) from e

        data.pop("_meta", None)

        try:
            return InterviewMaterial.model_validate(data)
        except ValidationError as e:
            raise ArchiveReadError(archive_path, e) from e

    def list_archives(self) -> list[str]:
        """
        List all archived room ids.

        Returns:
            Sorted list of room ids.
        """
        self._ensure_archive_dir()
        return sorted(
            path.name[: -len("_interview.json")]
            for path in self.archive_dir.glob("*_interview.json")
        )

    def delete_archive(self, room_id: str) -> bool:
        """
        Delete an archive file.

        Returns:
            True if file was deleted, False if it didn't exist.

        Raises:
            ArchiveWriteError: If file deletion fails.
        """
        archive_path = self._get_archive_path(room_id)

        if not archive_path.exists():
            return False

        try:
            archive_path.unlink()
            logger.info("Deleted archive for room %s", room_id)
            return True
        except OSError as e:
            raise ArchiveWriteError(archive_path, e) from e
