"""
Private photo storage for target pictures.

One file per entry under a single directory. File names are timestamp
derived and never reuse an existing name. Deletes are best-effort: a
missing or locked file is logged, never raised.
"""

import base64
import binascii
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class PhotoError(Exception):
    """A photo could not be read, decoded or written."""


class PhotoPermissionError(PhotoError):
    """The photo directory is not writable."""


IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png")


def photo_suffix(name: Optional[str]) -> str:
    """File suffix for an uploaded image name; ".jpg" when unknown."""
    suffix = Path(name or "").suffix.lower()
    return suffix if suffix in IMAGE_SUFFIXES else ".jpg"


class PhotoStore:
    def __init__(self, root: str):
        self.root = Path(root)

    def _init_directory(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PhotoPermissionError(
                f"Cannot create photo folder {self.root}. Check that the app may write there."
            ) from e

    def _unique_path(self, stem: str, suffix: str) -> Path:
        ms = int(time.time() * 1000)
        path = self.root / f"{stem}_{ms}{suffix}"
        n = 1
        while path.exists():
            path = self.root / f"{stem}_{ms}_{n}{suffix}"
            n += 1
        return path

    def save_bytes(self, data: bytes, stem: str = "target", suffix: str = ".jpg") -> str:
        """Write photo bytes to a fresh file and return its path."""
        if not data:
            raise PhotoError("Empty photo data")
        self._init_directory()
        path = self._unique_path(stem, suffix)
        try:
            path.write_bytes(data)
        except PermissionError as e:
            raise PhotoPermissionError(
                f"Cannot save photo in {self.root}. Check that the app may write there."
            ) from e
        except OSError as e:
            raise PhotoError(f"Could not save photo: {e}") from e
        logger.info("Saved photo %s (%d bytes)", path, len(data))
        return str(path)

    def exists(self, uri: Optional[str]) -> bool:
        return bool(uri) and os.path.isfile(uri)

    def read_base64(self, uri: str) -> Optional[str]:
        """Base64 text of a photo, or None if it is missing or unreadable."""
        if not self.exists(uri):
            logger.warning("Image file does not exist: %s", uri)
            return None
        try:
            data = Path(uri).read_bytes()
        except OSError as e:
            logger.error("Error reading image %s: %s", uri, e)
            return None
        if not data:
            logger.warning("Image file is empty: %s", uri)
            return None
        return base64.b64encode(data).decode("ascii")

    def write_base64(self, encoded: str, stem: str) -> str:
        """Decode base64 (optionally a data URL) into a new photo file."""
        if not encoded:
            raise PhotoError("Invalid base64 data")
        if "," in encoded:
            # data:image/jpeg;base64,....
            encoded = encoded.split(",", 1)[1]
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PhotoError(f"Invalid base64 data: {e}") from e
        return self.save_bytes(data, stem=stem)

    def delete(self, uri: Optional[str]) -> bool:
        """Best-effort delete. Returns True if a file was removed."""
        if not uri:
            return False
        try:
            if os.path.isfile(uri):
                os.remove(uri)
                logger.info("Deleted image file: %s", uri)
                return True
        except OSError as e:
            logger.error("Error deleting image file %s: %s", uri, e)
        return False

    def clear(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info("Deleted photos directory %s", self.root)
