"""
Share lifecycle on top of the record store and blob storage.

Bodies are written before records: a body is staged to a temporary file,
the record is inserted, and only then is the body moved under the share's
name. A failed insert leaves nothing behind but the staged file, which the
caller discards.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from shareit.errors import NotFound, StorageFailure
from shareit.expiry import utc_now
from shareit.models import Share, ShareKind

logger = logging.getLogger(__name__)


class ShareRepository:
    def __init__(self, store, blobs, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.blobs = blobs
        self.clock = clock

    def stage_body(self, kind: ShareKind, chunks: Iterable[bytes]) -> Optional[Path]:
        """Stage the body of a paste or file. Links have no body to stage."""
        if not kind.has_body:
            return None
        return self.blobs.stage(chunks, text=kind is ShareKind.PASTE)

    def create(self, share: Share, staged: Optional[Path] = None) -> Share:
        """
        Insert a share and publish its staged body.

        Raises:
            Conflict: If the name was taken; ``staged`` is left in place
            StorageFailure: If the record or body could not be written
        """
        self.store.insert(share)
        # Until publish, a read finds the record but no body and fails with 500.
        if staged is not None:
            try:
                self.blobs.publish(staged, share.name)
            except StorageFailure:
                self.store.delete(share.name)
                raise
        return share

    def get(self, name: str) -> Share:
        """
        Fetch a live share.

        An expired share is deleted on the spot and reported as missing,
        whether or not the deletion succeeds.
        """
        share = self.store.find_by_name(name)
        if share is None:
            raise NotFound("Share not found.")
        if share.is_expired(self.clock()):
            logger.info(f"Share {name} has expired")
            try:
                # The name may have been purged and taken again since the read.
                if self.store.find_by_name(name) == share:
                    self.delete(share)
            except StorageFailure as e:
                logger.warning(f"Could not delete expired share {name}: {e.detail}")
            raise NotFound("Share not found.")
        return share

    def update(
        self,
        share: Share,
        expiry: Optional[datetime],
        payload: Optional[str] = None,
        staged: Optional[Path] = None,
    ) -> Share:
        """
        Save new expiry, and new metadata and body where given.

        The body is replaced before the record; if the record update then
        fails the new body stays.
        """
        updated = share.with_expiry(expiry)
        if payload is not None:
            updated = updated.with_payload(payload)
        if staged is not None:
            self.blobs.publish(staged, share.name)
        self.store.update(updated)
        logger.info(f"Share {share.name} updated")
        return updated

    def delete(self, share: Share) -> None:
        """
        Remove the body, then the record.

        If the record cannot be removed the body stays deleted and the
        error propagates; deleting again is safe.
        """
        if share.kind.has_body:
            self.blobs.delete(share.name)
        self.store.delete(share.name)
