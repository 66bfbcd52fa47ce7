import os
import re
import time

# letters, digits, dot, underscore, space, dash, parentheses, brackets, plus
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ \-()\[\]+]")
_SEPARATORS = re.compile(r"[\\/]")

FILLER = "_"


def sanitize_segment(raw: str) -> str:
    # "" means rejected
    if not raw:
        return ""
    segment = _SEPARATORS.sub(FILLER, raw)
    segment = _UNSAFE_CHARS.sub(FILLER, segment)
    segment = segment.strip()
    if segment in ("", ".", ".."):
        return ""
    return segment


def sanitize_filename(raw: str) -> str:
    """Like sanitize_segment, but falls back to a timestamped name instead of ""."""
    name = sanitize_segment(os.path.basename((raw or "").replace("\\", "/")))
    if not name:
        name = f"file_{int(time.time())}"
    return name


def sanitize_relative_path(raw: str, strict: bool = False) -> str:
    """
    Sanitize a folder-upload path such as "photos/2024/img.jpg".

    Folder segments that sanitize to nothing are dropped. The last segment is
    the filename; with ``strict`` an invalid filename makes the whole path
    invalid (""), otherwise it gets the synthetic default.
    """
    if not raw:
        return ""
    segments = [s for s in raw.replace("\\", "/").split("/") if s != ""]
    if not segments:
        return ""

    clean = [s for s in (sanitize_segment(seg) for seg in segments[:-1]) if s]
    if strict:
        last = sanitize_segment(segments[-1])
        if not last:
            return ""
    else:
        last = sanitize_filename(segments[-1])
    clean.append(last)
    return "/".join(clean)


def sanitize_upload_name(relative_path: str, filename: str, strict: bool = False) -> str:
    """Target name for an upload: the folder-relative path when given, else the filename."""
    if relative_path:
        return sanitize_relative_path(relative_path, strict=strict)
    if strict:
        return sanitize_segment(os.path.basename((filename or "").replace("\\", "/")))
    return sanitize_filename(filename)
