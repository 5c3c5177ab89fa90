import os
import secrets
import shutil

from fastapi import HTTPException, UploadFile

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
UPLOAD_URL_PREFIX = "/uploads"


def save_upload(file: UploadFile) -> str:
    """Store an uploaded image under UPLOAD_DIR and return its public path."""
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Please upload an image file")
    _, ext = os.path.splitext(file.filename or "")
    name = f"{secrets.token_hex(12)}{ext.lower()}"
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    with open(os.path.join(UPLOAD_DIR, name), "wb") as out:
        shutil.copyfileobj(file.file, out)
    return f"{UPLOAD_URL_PREFIX}/{name}"
