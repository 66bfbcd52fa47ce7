import logging
import time
from typing import List

from nanocloud.chunk_store import ChunkStore
from nanocloud.errors import SessionCleanupError

logger = logging.getLogger(__name__)


def sweep(store: ChunkStore, max_age_hours: float, now: float = None) -> List[str]:
    """
    Remove chunk sessions idle for longer than ``max_age_hours``.

    Runs inline when a new upload sends its first chunk; there is no
    background scheduler. Returns the ids that were removed.
    """
    if now is None:
        now = time.time()
    threshold = now - max_age_hours * 3600
    removed = []
    for upload_id in store.session_ids():
        mtime = store.last_modified(upload_id)
        if mtime is None or mtime >= threshold:
            continue
        try:
            store.remove_session(upload_id)
        except SessionCleanupError:
            logger.warning(f"Stale chunk session {upload_id} could not be removed, will retry on next sweep")
            continue
        removed.append(upload_id)

    if removed:
        logger.info(f"Swept {len(removed)} stale chunk session(s)")
    return removed
