"""
Filesystem storage for paste and file bodies, one file per share name.
"""
import codecs
import logging
import os
import uuid
from pathlib import Path
from typing import Iterable, Union

from shareit.errors import StorageFailure, ValidationFailure

logger = logging.getLogger(__name__)

# '#' is not allowed in share names, so staged files never collide with one.
STAGING_PREFIX = "#staging-"


class BlobStorage:
    """Share bodies stored under ``upload_dir``, addressed by share name."""

    def __init__(self, upload_dir: Union[str, Path]):
        self.upload_dir = Path(upload_dir)

    def ensure_directory(self) -> None:
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFailure(f"Could not create upload directory {self.upload_dir}: {e}") from e

    def path(self, name: str) -> Path:
        return self.upload_dir / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def stage(self, chunks: Iterable[bytes], text: bool = False) -> Path:
        """
        Write a body to a temporary file and return its path.

        Args:
            chunks: The body
            text: Require the body to be valid UTF-8

        Raises:
            ValidationFailure: If ``text`` is set and the body is not UTF-8
            StorageFailure: If the file cannot be written
        """
        staged = self.upload_dir / f"{STAGING_PREFIX}{uuid.uuid4().hex}"
        decoder = codecs.getincrementaldecoder("utf-8")() if text else None
        try:
            with open(staged, "wb") as out:
                for chunk in chunks:
                    if decoder is not None:
                        decoder.decode(chunk)
                    out.write(chunk)
                if decoder is not None:
                    decoder.decode(b"", final=True)
        except UnicodeDecodeError:
            self.discard(staged)
            raise ValidationFailure("Could not decode body.") from None
        except OSError as e:
            self.discard(staged)
            raise StorageFailure(f"Could not write file: {e}") from e
        return staged

    def publish(self, staged: Path, name: str) -> None:
        """Atomically move a staged body into place, replacing any old body."""
        try:
            os.replace(staged, self.path(name))
        except OSError as e:
            raise StorageFailure(f"Could not publish body for share {name}: {e}") from e

    def discard(self, staged: Path) -> None:
        try:
            staged.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staged body {staged}: {e}")

    def write(self, name: str, chunks: Iterable[bytes], text: bool = False) -> None:
        staged = self.stage(chunks, text=text)
        try:
            self.publish(staged, name)
        except StorageFailure:
            self.discard(staged)
            raise

    def delete(self, name: str) -> None:
        """Remove a share's body. A body that is already gone counts as removed."""
        try:
            self.path(name).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageFailure(f"Could not delete file for share {name}: {e}") from e
