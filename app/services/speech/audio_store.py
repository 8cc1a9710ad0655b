"""Storage for synthesized audio files served to the telephony provider."""
import logging
import time
import uuid
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

FILE_PREFIX = "speech-"
AUDIO_EXTENSIONS = (".mp3", ".wav")


class AudioStore:
    """Directory of turn-scoped audio artifacts.

    Files are released explicitly once the provider has played them; the
    periodic ``reclaim`` pass removes anything that was never released.
    """

    def __init__(self, directory: str, public_path: str = "/audio"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.public_path = "/" + public_path.strip("/")

    def save(self, data: bytes, extension: str = "mp3") -> str:
        """Write audio bytes and return the generated file name."""
        filename = f"{FILE_PREFIX}{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"
        (self.directory / filename).write_bytes(data)
        return filename

    def public_url(self, filename: str, base_url: str = "") -> str:
        return f"{base_url.rstrip('/')}{self.public_path}/{filename}"

    def release(self, filenames: Iterable[str]) -> int:
        """Delete delivered files. Returns how many were removed."""
        removed = 0
        for filename in filenames:
            path = self.directory / Path(filename).name
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"[AUDIO STORE] Could not delete {path}: {e}")
        return removed

    def reclaim(self, max_age_hours: float, now: Optional[float] = None) -> int:
        """Delete synthesized files older than max_age_hours."""
        if not self.directory.is_dir():
            logger.warning(f"[AUDIO STORE] Directory missing, recreating: {self.directory}")
            self.directory.mkdir(parents=True, exist_ok=True)
            return 0
        now = now or time.time()
        max_age = max_age_hours * 60 * 60
        deleted = 0
        for path in self.directory.iterdir():
            if not (path.name.startswith(FILE_PREFIX) and path.suffix in AUDIO_EXTENSIONS):
                continue
            try:
                if now - path.stat().st_mtime > max_age:
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning(f"[AUDIO STORE] Could not reclaim {path}: {e}")
        if deleted:
            logger.info(f"[AUDIO STORE] Reclaimed {deleted} old audio files")
        return deleted
