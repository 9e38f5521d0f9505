from datetime import datetime, timezone
from uuid import UUID
import re


class KeyGenerator:
    @staticmethod
    def _safe_filename(filename: str) -> str:
        cleaned = re.sub(r"[^a-zA-Z0-9_.-]", "_", filename.strip())
        cleaned = cleaned.lstrip(".")
        return cleaned[:150] or "file"

    @staticmethod
    def generate_object_key(
        purpose: str, owner_id: UUID, filename: str, *, now: datetime | None = None
    ) -> str:
        """``{purpose}/{owner}/{epoch_ms}-{filename}``; the owner segment keeps keys per uploader."""
        moment = now or datetime.now(timezone.utc)
        stamp = int(moment.timestamp() * 1000)
        return f"{purpose}/{owner_id}/{stamp}-{KeyGenerator._safe_filename(filename)}"
