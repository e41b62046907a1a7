import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import get_settings
from errors import DependencyError, UploadError

logger = logging.getLogger(__name__)

ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
URL_PREFIX = "/uploads"


@dataclass(frozen=True)
class StoredReceipt:
    url: str
    public_id: str
    path: Path


class ReceiptStorage:
    def __init__(
        self, root: Optional[Path] = None, max_bytes: Optional[int] = None
    ) -> None:
        settings = get_settings()
        self.root = root or settings.upload_dir
        self.max_bytes = max_bytes or settings.max_upload_bytes

    def save(
        self, filename: str, content_type: Optional[str], content: bytes
    ) -> StoredReceipt:
        suffix = Path(filename or "").suffix.lower()
        if not content:
            raise UploadError("Empty file")
        if len(content) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise UploadError(f"File size is too large. Max limit is {limit_mb:g}MB")
        if suffix not in ALLOWED_SUFFIXES or not (content_type or "").startswith(
            "image/"
        ):
            raise UploadError("Only image files are allowed")

        public_id = f"receipt-{uuid.uuid4().hex}{suffix}"
        path = self.root / public_id
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise DependencyError("Receipt storage is unavailable") from exc
        logger.info(f"receipt_stored: public_id={public_id} bytes={len(content)}")
        return StoredReceipt(url=f"{URL_PREFIX}/{public_id}", public_id=public_id, path=path)

    def delete(self, public_id: str) -> None:
        path = self.root / Path(public_id).name
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"receipt_missing: public_id={public_id}")
