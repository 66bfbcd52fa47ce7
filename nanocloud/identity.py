import hashlib
import re

UPLOAD_ID_PATTERN = re.compile(r"[A-Za-z0-9\-]+")

# Unit separator; cannot appear in sanitized names and is unlikely in raw ones
_FIELD_SEPARATOR = "\x1f"


def upload_identity(
    filename: str,
    size: int,
    last_modified: int,
    target_path: str = "",
    relative_path: str = "",
) -> str:
    """
    Deterministic id for one logical upload.

    The same (name, size, mtime, target dir, folder-relative path) yields the
    same id on any device, so an interrupted upload can be resumed from a
    different browser or machine. SHA-1 keeps accidental collisions negligible.
    """
    fields = (filename, str(int(size)), str(int(last_modified)), target_path or "", relative_path or "")
    digest = hashlib.sha1(_FIELD_SEPARATOR.join(fields).encode("utf-8"))
    return digest.hexdigest()


def is_valid_upload_id(upload_id: str) -> bool:
    return bool(upload_id) and UPLOAD_ID_PATTERN.fullmatch(upload_id) is not None
