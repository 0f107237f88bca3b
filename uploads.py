import logging
import os
import time
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from errors import ValidationError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads/"
CHUNK_SIZE = 1024 * 1024


def describe_extensions(extensions: Sequence[str]) -> str:
    names = [e.lstrip(".").upper() for e in extensions]
    if len(names) <= 2:
        return " and ".join(names)
    return f"{', '.join(names[:-1])}, and {names[-1]}"


class UploadStore:
    """Keeps uploaded documents under ``root/<feature>/`` with timestamp-prefixed names."""

    def __init__(self, root: Path, max_bytes: int):
        self._root = Path(root)
        self._max_bytes = max_bytes

    def prepare(self, *features: str) -> None:
        for feature in features:
            (self._root / feature).mkdir(parents=True, exist_ok=True)

    def save(self, feature: str, filename: Optional[str], stream: BinaryIO, allowed_extensions: Sequence[str]) -> str:
        original = os.path.basename(filename or "")
        ext = os.path.splitext(original)[1].lower()
        if not original or ext not in allowed_extensions:
            raise ValidationError(
                f"Invalid file type. Only {describe_extensions(allowed_extensions)} files are allowed."
            )

        directory = self._root / feature
        directory.mkdir(parents=True, exist_ok=True)
        stored_name = f"{int(time.time() * 1000)}-{original}"
        target = directory / stored_name

        written = 0
        try:
            with target.open("wb") as out:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self._max_bytes:
                        raise ValidationError(f"File size exceeds the {self._max_bytes // (1024 * 1024)}MB limit")
                    out.write(chunk)
        except ValidationError:
            target.unlink(missing_ok=True)
            raise

        logger.info("Stored upload %s (%d bytes)", target, written)
        return f"{PUBLIC_PREFIX}{feature}/{stored_name}"

    def path_for(self, link: Optional[str]) -> Optional[Path]:
        """Local path behind an ``/uploads/...`` link, or None for external links."""

        if not link or not link.startswith(PUBLIC_PREFIX):
            return None
        path = (self._root / link[len(PUBLIC_PREFIX):]).resolve()
        if self._root.resolve() not in path.parents:
            return None
        return path

    def remove(self, link: Optional[str]) -> None:
        path = self.path_for(link)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            # Record deletion proceeds without the file.
            logger.warning("Failed to delete file %s: %s", path, exc)
