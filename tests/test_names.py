"""Tests for share name allocation."""
import threading

import pytest

from shareit.errors import AuthorizationFailure, Conflict, ValidationFailure
from shareit.models import Share
from shareit.names import (
    NAME_CHARS,
    TOKEN_CHARS,
    TOKEN_LENGTH,
    NameAllocator,
    RandomNameLength,
    generate_token,
)
from shareit.permissions import Permission, PermissionSet, RoleAuthorizer


class RecordingStore:
    """Store double that reports names as taken by a predicate."""

    def __init__(self, taken=lambda name: False):
        self.taken = taken
        self.checked = []

    def exists(self, name):
        self.checked.append(name)
        return self.taken(name)


CAN_NAME = RoleAuthorizer(PermissionSet([Permission.CREATE_ANY, Permission.CUSTOM_NAME]))
CANNOT_NAME = RoleAuthorizer(PermissionSet([Permission.CREATE_ANY]))


def make_allocator(store, random_length=8, max_length=32, attempt_limit=3, min_length=1):
    return NameAllocator(
        store,
        min_length=min_length,
        max_length=max_length,
        random_length=RandomNameLength(random_length, max_length),
        attempt_limit=attempt_limit,
    )


class TestExplicitNames:
    @pytest.mark.parametrize("name", ["a", "my-share", "x.y_z~1", "0" * 32, ".hidden"])
    def test_valid_name_is_returned(self, name):
        allocator = make_allocator(RecordingStore())
        assert allocator.allocate(name, CAN_NAME) == name

    @pytest.mark.parametrize(
        "name, message",
        [
            ("Upper", "Invalid character U"),
            ("with space", "Invalid character"),
            ("slash/name", "Invalid character /"),
            ("café", "Invalid character"),
            ("", "too short"),
            ("a" * 33, "too long"),
            ("trailing.", "cannot end with a period"),
        ],
    )
    def test_invalid_name_never_touches_store(self, name, message):
        store = RecordingStore()
        allocator = make_allocator(store)
        with pytest.raises(ValidationFailure, match=message):
            allocator.allocate(name, CAN_NAME)
        assert store.checked == []

    def test_minimum_length(self):
        allocator = make_allocator(RecordingStore(), min_length=3)
        with pytest.raises(ValidationFailure):
            allocator.allocate("ab", CAN_NAME)
        assert allocator.allocate("abc", CAN_NAME) == "abc"

    def test_taken_name_conflicts(self):
        allocator = make_allocator(RecordingStore(lambda name: name == "taken"))
        with pytest.raises(Conflict, match="already taken"):
            allocator.allocate("taken", CAN_NAME)

    def test_requires_custom_name_permission(self):
        store = RecordingStore()
        with pytest.raises(AuthorizationFailure):
            make_allocator(store).allocate("mine", CANNOT_NAME)
        assert store.checked == []

    def test_insert_conflict_is_final(self):
        calls = []

        def insert(name):
            calls.append(name)
            raise Conflict("Name is already taken.")

        with pytest.raises(Conflict):
            make_allocator(RecordingStore()).claim("mine", CAN_NAME, insert)
        assert calls == ["mine"]


class TestRandomNames:
    def test_generated_name_shape(self):
        name = make_allocator(RecordingStore(), random_length=10).allocate(None, CANNOT_NAME)
        assert len(name) == 10
        assert set(name) <= set(NAME_CHARS)

    def test_no_duplicates_against_shared_store(self, store):
        allocator = make_allocator(store, random_length=2, attempt_limit=5)

        def insert(name):
            store.insert(Share.new_link(name, "http://x/"))
            return name

        names = [allocator.claim(None, CANNOT_NAME, insert) for _ in range(200)]
        assert len(set(names)) == len(names)

    def test_length_grows_after_attempt_limit(self):
        store = RecordingStore(lambda name: len(name) < 5)
        allocator = make_allocator(store, random_length=4, attempt_limit=3)
        name = allocator.allocate(None, CANNOT_NAME)
        assert len(name) == 5
        assert allocator.random_length.get() == 5
        assert [len(n) for n in store.checked] == [4, 4, 4, 5]

    def test_growth_persists_for_later_allocations(self):
        store = RecordingStore(lambda name: len(name) < 5)
        allocator = make_allocator(store, random_length=4, attempt_limit=2)
        allocator.allocate(None, CANNOT_NAME)
        store.taken = lambda name: False
        store.checked.clear()
        assert len(allocator.allocate(None, CANNOT_NAME)) == 5
        assert allocator.random_length.get() == 5

    def test_exhausted_at_maximum_length(self):
        store = RecordingStore(lambda name: True)
        allocator = make_allocator(store, random_length=3, max_length=4, attempt_limit=2)
        with pytest.raises(Conflict, match="Could not find an unused name"):
            allocator.allocate(None, CANNOT_NAME)
        assert allocator.random_length.get() == 4
        assert [len(n) for n in store.checked] == [3, 3, 4, 4]

    def test_insert_conflict_counts_as_collision(self):
        attempts = []

        def insert(name):
            attempts.append(name)
            if len(attempts) == 1:
                raise Conflict("Name is already taken.")
            return name

        allocator = make_allocator(RecordingStore())
        name = allocator.claim(None, CANNOT_NAME, insert)
        assert name == attempts[1]
        assert len(attempts) == 2


class TestRandomNameLength:
    def test_starts_at_initial_value(self):
        assert RandomNameLength(6, 32).get() == 6

    def test_initial_value_capped_at_maximum(self):
        assert RandomNameLength(40, 32).get() == 32

    def test_grow_only_from_observed_value(self):
        length = RandomNameLength(6, 32)
        assert length.grow(6)
        assert not length.grow(6)
        assert length.get() == 7

    def test_never_grows_past_maximum(self):
        length = RandomNameLength(8, 8)
        assert not length.grow(8)
        assert length.get() == 8

    def test_concurrent_growth_moves_one_step(self):
        length = RandomNameLength(6, 32)
        barrier = threading.Barrier(8)
        results = []

        def grow():
            barrier.wait()
            results.append(length.grow(6))

        threads = [threading.Thread(target=grow) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert results.count(True) == 1
        assert length.get() == 7


def test_generate_token():
    token = generate_token()
    assert len(token) == TOKEN_LENGTH
    assert set(token) <= set(TOKEN_CHARS)
    assert generate_token() != token
