import logging
import os
import shutil
import uuid

from fastapi import UploadFile

from campusnet.config import settings
from campusnet.errors import UploadError

logger = logging.getLogger(__name__)

ALLOWED_PREFIXES = ("image/", "video/")


class LocalFileStore:
    """Stores uploads on disk and hands back the public URL to persist."""

    def __init__(self, root: str = None, max_bytes: int = None):
        self.root = root or settings.UPLOAD_ROOT
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES

    def save(self, upload: UploadFile, folder: str) -> str:
        if upload is None or not upload.filename:
            raise UploadError("No file provided")
        content_type = upload.content_type or ""
        if not content_type.startswith(ALLOWED_PREFIXES):
            raise UploadError(f"Unsupported file type: {content_type or 'unknown'}")

        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
        if size == 0:
            raise UploadError("No file provided")
        if size > self.max_bytes:
            raise UploadError("File size exceeds maximum allowed size")

        directory = os.path.join(self.root, folder)
        os.makedirs(directory, exist_ok=True)
        filename = f"{uuid.uuid4()}_{os.path.basename(upload.filename)}"
        with open(os.path.join(directory, filename), "wb") as out:
            shutil.copyfileobj(upload.file, out)

        logger.info("Stored upload %s/%s (%d bytes)", folder, filename, size)
        return f"/uploads/{folder}/{filename}"

    def delete(self, url: str) -> bool:
        relative = os.path.normpath(url.split("/uploads/", 1)[-1])
        if relative.startswith("..") or os.path.isabs(relative):
            return False
        path = os.path.join(self.root, relative)
        if not os.path.isfile(path):
            return False
        os.remove(path)
        return True


def get_file_store() -> LocalFileStore:
    return LocalFileStore()
