"""
Durable height cursor.

The cursor file holds exactly four bytes: the last fully processed block
height as a little-endian u32. Writes replace the whole file.
"""

import os
import struct
from pathlib import Path
from typing import Optional, Union

import structlog

from aleo_rewards.core.exceptions import CursorError


logger = structlog.get_logger(__name__)

CURSOR_FORMAT = "<I"
CURSOR_SIZE = struct.calcsize(CURSOR_FORMAT)
U32_MAX = 2**32 - 1


class HeightCursor:
    """Last fully processed block height, persisted to a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._tmp_path = self.path.with_name(self.path.name + ".tmp")

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[int]:
        """
        Read the persisted height.

        Returns:
            The height, or None if the file does not exist

        Raises:
            CursorError: If the file is unreadable or not exactly 4 bytes
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CursorError(f"Failed to read height file {self.path}", {"error": str(e)})

        if len(data) != CURSOR_SIZE:
            raise CursorError(
                f"Height file {self.path} must hold {CURSOR_SIZE} bytes, found {len(data)}",
                {"path": str(self.path), "size": len(data)}
            )
        return struct.unpack(CURSOR_FORMAT, data)[0]

    def write(self, height: int) -> None:
        """Replace the persisted height."""
        if not 0 <= height <= U32_MAX:
            raise CursorError(f"Height {height} is not a u32", {"height": height})

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._tmp_path.write_bytes(struct.pack(CURSOR_FORMAT, height))
            os.replace(self._tmp_path, self.path)
        except OSError as e:
            raise CursorError(f"Failed to write height file {self.path}", {"error": str(e)})

        logger.debug("Height cursor advanced", height=height)

    def ensure(self, default: int = 0) -> int:
        """Read the height, creating the file with ``default`` if it is missing."""
        height = self.read()
        if height is None:
            self.write(default)
            logger.info("Height file created", path=str(self.path), height=default)
            return default
        return height
