import logging
import shutil

from nanocloud.config import Settings
from nanocloud.models import StorageInfo

logger = logging.getLogger(__name__)


class StorageService:
    """Capacity reporting for the storage root."""

    def __init__(self, settings: Settings):
        self.root = settings.STORAGE_ROOT

    def get_storage_info(self) -> StorageInfo:
        try:
            usage = shutil.disk_usage(self.root)
        except OSError as e:
            logger.warning(f"Cannot read disk usage for storage root: {e}")
            return StorageInfo()
        total, free = usage.total, usage.free
        used = max(0, total - free)
        percent = (used / total * 100.0) if total > 0 else 0.0
        return StorageInfo(totalBytes=total, freeBytes=free, usedBytes=used, usedPercent=percent)

    def has_enough_space(self, required_bytes: int) -> bool:
        try:
            free = shutil.disk_usage(self.root).free
        except OSError:
            return False
        return free >= required_bytes
