"""Mirror a local build directory into the bucket."""

import mimetypes
import os
from typing import List, Optional

import filetype
import magic
from google.api_core.exceptions import GoogleAPIError

# Enough bytes for libmagic and filetype to recognise what they know about.
SNIFF_BYTES = 8192

# Content sniffing can't tell these apart from plain text.
EXTENSION_TYPES = {
    ".css": "text/css",
    ".js": "application/javascript",
    ".map": "binary/octet-stream",
}

# libmagic answers for bytes it could not place; keep looking.
GENERIC_TYPES = {"text/plain", "application/octet-stream", "application/x-empty", "inode/x-empty"}


def detect_mime_type(fname: str, head: bytes) -> str:
    """Pick a content type from the file name, then from its leading bytes."""
    _, ext = os.path.splitext(fname)
    if ext.lower() in EXTENSION_TYPES:
        return EXTENSION_TYPES[ext.lower()]

    if head:
        content_type = magic.from_buffer(head, mime=True)
        if content_type and content_type not in GENERIC_TYPES:
            return content_type

        content_type = filetype.guess_mime(head)
        if content_type:
            return content_type

    content_type, _ = mimetypes.guess_type(fname)
    if content_type:
        return content_type

    try:
        head.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def upload_file(bucket, path: str, key: str):
    blob = bucket.blob(key)
    with open(path, "rb") as f:
        blob.upload_from_file(f)
        f.seek(0)
        head = f.read(SNIFF_BYTES)

    blob.content_type = detect_mime_type(os.path.basename(path), head)
    blob.patch()


def upload_files(bucket, build_dir: str, sub_path: str = "", errors: Optional[List[str]] = None) -> List[str]:
    """Upload every file under build_dir, depth first.

    Failures are collected into ``errors`` rather than raised, so one bad
    file never stops the rest of the tree from going up.
    """
    if errors is None:
        errors = []

    try:
        entries = sorted(os.scandir(os.path.join(build_dir, sub_path)), key=lambda e: e.name)
    except OSError as e:
        errors.append(f"{sub_path or '.'}: {e}")
        return errors

    for entry in entries:
        key = sub_path + entry.name
        if entry.is_dir():
            upload_files(bucket, build_dir, key + "/", errors)
            continue
        if not entry.is_file():
            continue

        try:
            upload_file(bucket, entry.path, key)
        except (OSError, GoogleAPIError) as e:
            errors.append(f"{key}: {e}")
            continue
        print(f"  {key}")

    return errors
