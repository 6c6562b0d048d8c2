"""
Share name allocation and token generation.
"""
import logging
import secrets
import string
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from shareit.errors import Conflict, ValidationFailure
from shareit.permissions import Action, Authorizer

logger = logging.getLogger(__name__)

NAME_CHARS = string.ascii_lowercase + string.digits
CUSTOM_NAME_CHARS = frozenset(NAME_CHARS + "-._~")
TOKEN_CHARS = string.ascii_letters + string.digits
TOKEN_LENGTH = 128

T = TypeVar("T")


def generate_random_string(chars: str, length: int) -> str:
    return "".join(secrets.choice(chars) for _ in range(length))


def generate_token() -> str:
    """Opaque secret that lets the creator manage a share later."""
    return generate_random_string(TOKEN_CHARS, TOKEN_LENGTH)


class ReadWriteLock:
    """
    Many concurrent readers, one writer at a time.

    Waiting writers hold back new readers so a steady stream of reads
    cannot starve a write.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._readers = 0
        self._writing = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writing or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class RandomNameLength:
    """The current length of generated names. Only ever grows."""

    def __init__(self, initial: int, maximum: int):
        self._value = min(initial, maximum)
        self.maximum = maximum
        self._lock = ReadWriteLock()

    def get(self) -> int:
        with self._lock.read():
            return self._value

    def grow(self, observed: int) -> bool:
        """
        Increment the length if it is still ``observed``.

        Callers that saw the same length race to grow it; only the first
        one wins, so the length moves up by exactly one step.
        """
        with self._lock.write():
            if self._value != observed or self._value >= self.maximum:
                return False
            self._value += 1
            logger.info(f"Random name length grown to {self._value}")
            return True


class NameAllocator:
    """
    Produces unused share names.

    Args:
        store: Anything with an ``exists(name) -> bool`` method
        min_length: Shortest allowed custom name
        max_length: Longest allowed name, custom or random
        random_length: Shared, growing length for random names
        attempt_limit: Collisions tolerated at one length before growing it
    """

    def __init__(
        self,
        store,
        min_length: int,
        max_length: int,
        random_length: RandomNameLength,
        attempt_limit: int,
    ):
        self.store = store
        self.min_length = min_length
        self.max_length = max_length
        self.random_length = random_length
        self.attempt_limit = max(attempt_limit, 1)

    def validate(self, name: str) -> str:
        """Check a custom name's characters and length. Does not touch the store."""
        for char in name:
            if char not in CUSTOM_NAME_CHARS:
                raise ValidationFailure(
                    f"Invalid character {char} in name, must be a-z, 0-9, _, ., ~ or -."
                )
        if len(name) < self.min_length:
            raise ValidationFailure("Name is too short.")
        if len(name) > self.max_length:
            raise ValidationFailure("Name is too long.")
        if name.endswith("."):
            raise ValidationFailure("Name cannot end with a period.")
        return name

    def allocate(self, explicit_name: Optional[str], authorizer: Authorizer) -> str:
        """Return an unused name without reserving it."""
        return self.claim(explicit_name, authorizer, lambda name: name)

    def claim(
        self,
        explicit_name: Optional[str],
        authorizer: Authorizer,
        insert: Callable[[str], T],
    ) -> T:
        """
        Pick a name and hand it to ``insert``.

        ``insert`` raising Conflict means the name was taken after the
        existence check. For a custom name that is final; for a random name
        it counts as one more collision.
        """
        if explicit_name is not None:
            authorizer.authorize(Action.CUSTOM_NAME)
            name = self.validate(explicit_name)
            if self.store.exists(name):
                raise Conflict("Name is already taken.")
            return insert(name)
        return self._claim_random(insert)

    def _claim_random(self, insert: Callable[[str], T]) -> T:
        attempts = 0
        while True:
            length = self.random_length.get()
            candidate = generate_random_string(NAME_CHARS, length)
            attempts += 1
            if not self.store.exists(candidate):
                try:
                    return insert(candidate)
                except Conflict:
                    logger.info(f"Random name {candidate} was taken concurrently")
            if attempts >= self.attempt_limit:
                if length >= self.max_length:
                    logger.error(f"Name space exhausted at maximum length {length}")
                    raise Conflict("Could not find an unused name.")
                self.random_length.grow(length)
                attempts = 0
