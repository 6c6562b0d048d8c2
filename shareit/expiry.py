"""
Expiry computation and the background sweeper that purges expired shares.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from shareit.errors import StorageFailure

logger = logging.getLogger(__name__)

LATEST_EXPIRY = datetime.max.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_expiry(
    requested: Optional[timedelta],
    maximum: Optional[timedelta],
    now: datetime,
) -> Optional[datetime]:
    """
    Absolute expiry for a share created or updated at ``now``.

    The requested lifetime is capped at ``maximum``; with neither the share
    never expires. Lifetimes past the end of the calendar end there.
    """
    if requested is None and maximum is None:
        return None
    if requested is None:
        lifetime = maximum
    elif maximum is None:
        lifetime = requested
    else:
        lifetime = min(requested, maximum)
    try:
        return now + lifetime
    except OverflowError:
        return LATEST_EXPIRY


class SweeperState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PURGING = "purging"


class SweepError(Exception):
    """Some expired shares lost their records but kept their files."""

    def __init__(self, failed: List[str]):
        self.failed = failed
        super().__init__(f"Failed to delete {len(failed)} shares: {', '.join(failed)}")


class ExpirySweeper:
    """
    Periodically deletes expired shares and their bodies.

    Args:
        store: ShareDatabase handle owned by the sweeper
        blobs: BlobStorage holding share bodies
        interval: Seconds to sleep between sweeps
        clock: Returns the current time
    """

    def __init__(self, store, blobs, interval: float, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.blobs = blobs
        self.interval = interval
        self.clock = clock
        self.state = SweeperState.IDLE
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> int:
        """
        Run one scan-and-purge cycle.

        Returns:
            Number of expired shares found

        Raises:
            SweepError: If some bodies could not be removed. Their records
                are gone regardless.
            StorageFailure: If the store could not be queried
        """
        cutoff = self.clock()
        self.state = SweeperState.SCANNING
        try:
            expired = self.store.find_expired(cutoff)
            if not expired:
                return 0
            self.state = SweeperState.PURGING
            self.store.delete_expired(cutoff)
            failed = []
            for share in expired:
                if not share.kind.has_body:
                    continue
                # Name reused since the purge; the file is the new share's.
                if self.store.exists(share.name):
                    continue
                try:
                    self.blobs.delete(share.name)
                except StorageFailure as e:
                    logger.warning(e.detail)
                    failed.append(share.name)
            logger.info(f"Purged {len(expired)} expired shares")
            if failed:
                raise SweepError(failed)
            return len(expired)
        finally:
            self.state = SweeperState.IDLE

    def run(self) -> None:
        """Sweep every ``interval`` seconds until stopped. Never raises."""
        while not self._stopped.is_set():
            try:
                self.sweep_once()
            except SweepError as e:
                logger.error(f"Error clearing expired shares: {e}")
            except StorageFailure as e:
                logger.error(f"Error clearing expired shares: {e.detail}")
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected error clearing expired shares")
            self._stopped.wait(self.interval)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self.run, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Expiry sweeper started, interval {self.interval}s")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        if self._thread is None:
            return
        self._stopped.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Expiry sweeper stopped")
