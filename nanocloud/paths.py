import logging
import os
from typing import NamedTuple

from nanocloud.config import Settings
from nanocloud.errors import DestinationExists, OutsideRoot, PathNotFound, StorageWriteError
from nanocloud.helpers import ensure_directory
from nanocloud.sanitizer import sanitize_segment

logger = logging.getLogger(__name__)


class PathHandle(NamedTuple):
    absolute: str
    relative: str


def normalize_path(path: str) -> str:
    """Split on either separator, sanitize every segment, drop the empty ones."""
    if not path:
        return ""
    segments = path.replace("\\", "/").split("/")
    return "/".join(s for s in (sanitize_segment(seg) for seg in segments) if s)


def is_within_root(root: str, path: str) -> bool:
    # Case-insensitive prefix on canonical paths
    root = root.replace("\\", "/").lower().rstrip("/")
    path = path.replace("\\", "/").lower()
    return path == root or path.startswith(root + "/")


def resolve(storage_root: str, relative: str, must_exist: bool = True) -> PathHandle:
    """
    Resolve ``relative`` against ``storage_root``.

    Raises PathNotFound when the location (or, with ``must_exist=False``, its
    parent) does not exist, and OutsideRoot when the canonical path escapes
    the root, e.g. through a symlink.
    """
    root_real = os.path.realpath(storage_root)
    if not os.path.isdir(root_real):
        raise PathNotFound()

    normalized = normalize_path(relative)
    if normalized == "":
        return PathHandle(root_real, "")

    candidate = os.path.join(root_real, *normalized.split("/"))
    if os.path.exists(candidate):
        real = os.path.realpath(candidate)
    elif not must_exist and os.path.isdir(os.path.dirname(candidate)):
        real = os.path.join(
            os.path.realpath(os.path.dirname(candidate)), os.path.basename(candidate)
        )
    else:
        raise PathNotFound()

    if not is_within_root(root_real, real):
        logger.warning(f"Rejected path escaping storage root: {relative!r}")
        raise OutsideRoot()

    return PathHandle(real, normalized)


def resolve_directory(storage_root: str, relative: str) -> PathHandle:
    handle = resolve(storage_root, relative)
    if not os.path.isdir(handle.absolute):
        raise PathNotFound()
    return handle


def prepare_destination(settings: Settings, target: PathHandle, name: str) -> PathHandle:
    """
    Handle for a new file ``name`` (possibly "folder/sub/file") under ``target``.

    Creates intermediate folders with configured permissions, then re-resolves
    the result so a symlinked folder cannot carry the file outside the root.
    Raises DestinationExists when something is already there.
    """
    relative = f"{target.relative}/{name}" if target.relative else name
    final_dir = os.path.dirname(os.path.join(target.absolute, *name.split("/")))

    # The deepest existing ancestor must already be inside the root
    existing = final_dir
    while not os.path.exists(existing):
        existing = os.path.dirname(existing)
    if not is_within_root(os.path.realpath(settings.STORAGE_ROOT), os.path.realpath(existing)):
        logger.warning(f"Rejected upload destination escaping storage root: {relative!r}")
        raise OutsideRoot()

    if not ensure_directory(final_dir, settings):
        raise StorageWriteError("Failed to create directory structure.")

    handle = resolve(settings.STORAGE_ROOT, relative, must_exist=False)
    if os.path.lexists(handle.absolute):
        raise DestinationExists()
    return handle
