"""
Share management: ties together authorization, name allocation, content
classification and the share repository for each API operation.
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from shareit.abilities import load_abilities
from shareit.classifier import (
    ContentPolicy,
    classify_file,
    classify_link,
    classify_metadata,
    classify_paste,
)
from shareit.errors import StorageFailure, ValidationFailure
from shareit.expiry import compute_expiry, utc_now
from shareit.models import Abilities, CreatedShare, Share, ShareKind, ShareRequest
from shareit.names import NameAllocator, RandomNameLength, generate_token
from shareit.permissions import Action, PasswordTable, parse_password_table
from shareit.repository import ShareRepository

logger = logging.getLogger(__name__)


def _decode_link(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationFailure("Could not read or decode body.") from None


class ShareService:
    def __init__(
        self,
        passwords: PasswordTable,
        allocator: NameAllocator,
        policy: ContentPolicy,
        repository: ShareRepository,
        max_expiry: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.passwords = passwords
        self.allocator = allocator
        self.policy = policy
        self.repository = repository
        self.max_expiry = max_expiry
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, store, blobs, clock: Callable[[], datetime] = utc_now):
        random_length = RandomNameLength(settings.random_name_length(), settings.MAX_NAME_LENGTH)
        allocator = NameAllocator(
            store,
            min_length=settings.MIN_NAME_LENGTH,
            max_length=settings.MAX_NAME_LENGTH,
            random_length=random_length,
            attempt_limit=settings.RANDOM_NAME_ATTEMPT_LIMIT,
        )
        max_expiry = None
        if settings.MAX_EXPIRY_TIME is not None:
            max_expiry = timedelta(seconds=settings.MAX_EXPIRY_TIME)
        return cls(
            passwords=PasswordTable(parse_password_table(settings.PASSWORDS)),
            allocator=allocator,
            policy=ContentPolicy.from_settings(settings),
            repository=ShareRepository(store, blobs, clock),
            max_expiry=max_expiry,
            clock=clock,
        )

    @property
    def blobs(self):
        return self.repository.blobs

    def _expiry(self, request: ShareRequest) -> Optional[datetime]:
        return compute_expiry(request.expire_after, self.max_expiry, self.clock())

    def create(self, request: ShareRequest, body: bytes) -> CreatedShare:
        """
        Create a share from a request and its body.

        Raises:
            ShareError: Any of its subclasses, see shareit.errors
        """
        authorizer = self.passwords.authorizer(request.authorization)
        if request.kind is None:
            raise ValidationFailure("Share-Type is required.")
        kind = request.kind
        authorizer.authorize(Action.create(kind))

        if kind is ShareKind.LINK:
            payload = classify_link(self.policy, _decode_link(body))
        else:
            payload = classify_metadata(self.policy, kind, request.language, request.mime_type)
        token = generate_token() if authorizer.give_token() else None
        expiry = self._expiry(request)

        staged = self.repository.stage_body(kind, [body])
        try:
            share = self.allocator.claim(
                request.name,
                authorizer,
                lambda name: self.repository.create(
                    Share.new(kind, name, payload, expiry=expiry, token=token), staged
                ),
            )
        finally:
            # Already moved into place if the share was created.
            if staged is not None:
                self.blobs.discard(staged)
        logger.info(f"Created {kind.value} share {share.name}")
        return CreatedShare(name=share.name, token=share.token)

    def fetch(self, name: str) -> Share:
        return self.repository.get(name)

    def update(self, name: str, request: ShareRequest, body: bytes) -> Share:
        """
        Update a share on behalf of its owner or an UpdateAny caller.

        Expiry is always recomputed. A non-empty body replaces the link or
        body; language and MIME type are replaced only when given and when
        they belong to the share's kind.
        """
        share = self.repository.get(name)
        self.passwords.authorizer(request.authorization).authorize(Action.UPDATE, share)
        expiry = self._expiry(request)

        payload = None
        if body and share.kind is ShareKind.LINK:
            payload = classify_link(self.policy, _decode_link(body))
        if request.language is not None and share.kind is ShareKind.PASTE:
            payload = classify_paste(self.policy, request.language)
        if request.mime_type is not None and share.kind is ShareKind.FILE:
            payload = classify_file(self.policy, request.mime_type)

        staged = self.repository.stage_body(share.kind, [body]) if body else None
        try:
            return self.repository.update(share, expiry, payload=payload, staged=staged)
        finally:
            if staged is not None:
                self.blobs.discard(staged)

    def delete(self, name: str, authorization: Optional[str]) -> None:
        share = self.repository.get(name)
        self.passwords.authorizer(authorization).authorize(Action.UPDATE, share)
        self.repository.delete(share)
        logger.info(f"Deleted share {name}")

    def abilities(self, authorization: Optional[str]) -> Abilities:
        return load_abilities(
            self.passwords.authorizer(authorization),
            self.policy,
            login=self.passwords.has_passwords,
            min_name_length=self.allocator.min_length,
            max_name_length=self.allocator.max_length,
        )

    def body_path(self, share: Share) -> Path:
        """Location of a paste or file body, which must exist."""
        if not self.blobs.exists(share.name):
            raise StorageFailure(f"Body of share {share.name} is missing")
        return self.blobs.path(share.name)
