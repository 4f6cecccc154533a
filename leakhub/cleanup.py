"""
Cleanup module for removing stale requests.

Requests their owner closed are deleted once older than a number of days
(default: 1). Requests closed by verification stay, they carry the credit
history of a verified leak.
"""

from datetime import datetime, timedelta
from typing import Tuple

from .logger import get_logger
from .storage import LeakStore, StorageError

logger = get_logger()


def delete_old_closed_requests(store: LeakStore, days: int = 1) -> Tuple[int, int]:
    """
    Remove user-closed requests created more than `days` days ago.

    Args:
        store: Store to clean
        days: Age threshold in days (default: 1)

    Returns:
        Tuple of (total_requests_before, total_requests_after)
        Difference = requests_removed
    """
    cutoff = datetime.now() - timedelta(days=days)
    logger.debug("Starting closed request cleanup", days=days, cutoff=cutoff.isoformat())

    try:
        before, after = store.delete_closed_requests(created_before=cutoff)
    except StorageError as e:
        logger.error(f"Cleanup failed: {e}", days=days)
        return (0, 0)

    logger.info(
        f"Cleanup complete: {before - after} removed, {after} remaining",
        requests_before=before,
        requests_removed=before - after,
        requests_after=after,
        days_threshold=days,
    )
    return (before, after)
