"""
Storage Service — closure archive files on the local blob store.

Files land under ``UPLOAD_FOLDER/closures/<course_id>/`` and are served
from ``UPLOAD_BASE_URL``. An archive is removed once neither the wizard
nor a stored closure points at it any more.
"""

from __future__ import annotations

import logging
import os
import uuid

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from coursedesk.services.closure_wizard import validate_archive

logger = logging.getLogger(__name__)

ARCHIVE_DIR = "closures"


def _file_size(file_storage: FileStorage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _archive_root() -> str:
    return os.path.normpath(os.path.join(current_app.config["UPLOAD_FOLDER"], ARCHIVE_DIR))


def _archive_path(url: str | None) -> str | None:
    """Local path of an archive URL, or None when the URL is not one of ours."""
    base = current_app.config["UPLOAD_BASE_URL"].rstrip("/") + "/"
    if not url or not url.startswith(base):
        return None
    relative = url[len(base):]
    target = os.path.normpath(
        os.path.join(current_app.config["UPLOAD_FOLDER"], *relative.split("/")))
    if not target.startswith(_archive_root() + os.sep):
        return None
    return target


def save_closure_archive(course_id: int, file_storage: FileStorage) -> dict:
    """Validate and store a closure ZIP; returns {filename, size, url}."""
    filename = secure_filename(file_storage.filename or "")
    size = _file_size(file_storage)
    validate_archive(filename, size, current_app.config["CLOSURE_MAX_FILE_BYTES"])

    stored_name = f"{uuid.uuid4().hex[:8]}_{filename}"
    relative = os.path.join(ARCHIVE_DIR, str(course_id), stored_name)
    target = os.path.join(current_app.config["UPLOAD_FOLDER"], relative)
    os.makedirs(os.path.dirname(target), exist_ok=True)
    file_storage.save(target)

    url = f"{current_app.config['UPLOAD_BASE_URL'].rstrip('/')}/{relative.replace(os.sep, '/')}"
    logger.info("Closure archive stored: course=%s file=%s size=%d", course_id, stored_name, size,
                extra={"course_instance_id": course_id})
    return {"filename": filename, "size": size, "url": url}


def delete_closure_archive(url: str | None) -> bool:
    """Remove a stored archive by its public URL.

    Returns False when the URL is foreign or the file is already gone.
    """
    target = _archive_path(url)
    if target is None or not os.path.isfile(target):
        return False
    try:
        os.remove(target)
    except OSError:
        logger.warning("Could not remove closure archive %s", target, exc_info=True)
        return False
    logger.info("Closure archive removed: %s", url)
    return True
