"""
Credential resolution and authorization.

A password (or its absence) resolves to a PermissionSet and is checked by a
RoleAuthorizer. A share token is checked by a TokenAuthorizer, which can only
manage the one share holding that token.
"""
import hmac
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

from shareit.config import DEFAULT_PASSWORD
from shareit.errors import AuthenticationFailure, AuthorizationFailure, ValidationFailure
from shareit.models import Share, ShareKind

logger = logging.getLogger(__name__)

TOKEN_NOT_ACCEPTED = "Token-based authentication should not be used for this endpoint."


class Permission(str, Enum):
    CREATE_ANY = "create_any"
    CREATE_LINK = "create_link"
    CREATE_FILE = "create_file"
    CREATE_PASTE = "create_paste"
    UPDATE_OWN = "update_own"
    UPDATE_ANY = "update_any"
    CUSTOM_NAME = "custom_name"


class Action(Enum):
    """Guarded actions, valued by how they read in a denial message."""

    CREATE_LINK = "create a short link"
    CREATE_PASTE = "create a paste"
    CREATE_FILE = "upload a file"
    CUSTOM_NAME = "use a custom name"
    UPDATE = "update shares you didn't create"

    @classmethod
    def create(cls, kind: ShareKind) -> "Action":
        return _CREATE_ACTIONS[kind]


_CREATE_ACTIONS = {
    ShareKind.LINK: Action.CREATE_LINK,
    ShareKind.PASTE: Action.CREATE_PASTE,
    ShareKind.FILE: Action.CREATE_FILE,
}

_CREATE_PERMISSIONS = {
    Action.CREATE_LINK: Permission.CREATE_LINK,
    Action.CREATE_PASTE: Permission.CREATE_PASTE,
    Action.CREATE_FILE: Permission.CREATE_FILE,
}


class PermissionSet:
    """Capabilities conferred by one credential."""

    def __init__(self, permissions: Iterable[Permission] = ()):
        self._permissions: FrozenSet[Permission] = frozenset(permissions)

    def __contains__(self, permission: Permission) -> bool:
        return permission in self._permissions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return self._permissions == other._permissions

    def __hash__(self) -> int:
        return hash(self._permissions)

    def __repr__(self) -> str:
        return f"PermissionSet({sorted(p.value for p in self._permissions)})"

    def can_create(self, kind: ShareKind) -> bool:
        return self.allows(Action.create(kind))

    @property
    def update_any(self) -> bool:
        return Permission.UPDATE_ANY in self

    @property
    def update_own(self) -> bool:
        return self.update_any or Permission.UPDATE_OWN in self

    @property
    def custom_name(self) -> bool:
        return Permission.CUSTOM_NAME in self

    def allows(self, action: Action) -> bool:
        if action in _CREATE_PERMISSIONS:
            return Permission.CREATE_ANY in self or _CREATE_PERMISSIONS[action] in self
        if action is Action.CUSTOM_NAME:
            return self.custom_name
        # Updating through a password means updating a share you may not own.
        return self.update_any


class Authorizer(ABC):
    """Decides what the caller behind one request may do."""

    @abstractmethod
    def permissions(self) -> PermissionSet:
        """The caller's PermissionSet, for endpoints that need one."""

    @abstractmethod
    def authorize(self, action: Action, share: Optional[Share] = None) -> None:
        """Raise AuthorizationFailure unless the action is allowed."""

    @abstractmethod
    def give_token(self) -> bool:
        """Whether a share created by this caller should carry a token."""


class RoleAuthorizer(Authorizer):
    """Authorizes from a password's (or the anonymous) PermissionSet."""

    def __init__(self, permission_set: PermissionSet, anonymous: bool = False):
        self.permission_set = permission_set
        self.anonymous = anonymous

    def permissions(self) -> PermissionSet:
        return self.permission_set

    def authorize(self, action: Action, share: Optional[Share] = None) -> None:
        if not self.permission_set.allows(action):
            raise AuthorizationFailure(f"You do not have permission to {action.value}.")

    def give_token(self) -> bool:
        return self.permission_set.update_own


class TokenAuthorizer(Authorizer):
    """Authorizes mutation of exactly the share whose token was presented."""

    def __init__(self, token: str):
        self.token = token

    def permissions(self) -> PermissionSet:
        raise AuthenticationFailure(TOKEN_NOT_ACCEPTED)

    def authorize(self, action: Action, share: Optional[Share] = None) -> None:
        if action is not Action.UPDATE or share is None:
            raise AuthenticationFailure(TOKEN_NOT_ACCEPTED)
        if share.token is None or not hmac.compare_digest(share.token, self.token):
            raise AuthorizationFailure("Your share token is incorrect.")

    def give_token(self) -> bool:
        return False


def parse_password_table(raw: Mapping[str, List[str]]) -> Dict[str, PermissionSet]:
    """Turn the configured password table into PermissionSets."""
    table = {}
    for password, names in raw.items():
        try:
            table[password] = PermissionSet(Permission(name) for name in names)
        except ValueError as e:
            raise RuntimeError(f"Unknown permission in password table: {e}") from e
    return table


class PasswordTable:
    """Maps passwords to PermissionSets by exact match."""

    def __init__(self, table: Mapping[str, PermissionSet]):
        self._table = dict(table)

    @property
    def has_passwords(self) -> bool:
        return bool(self._table)

    def resolve(self, password: Optional[str]) -> PermissionSet:
        """
        Resolve a password to its PermissionSet.

        ``None`` is the anonymous caller and gets the default entry, or
        nothing if there is none.
        """
        if password is None:
            return self._table.get(DEFAULT_PASSWORD, PermissionSet())
        try:
            return self._table[password]
        except KeyError:
            logger.warning("Rejected request with an unrecognised password")
            raise AuthenticationFailure("Given password was not recognised.") from None

    def authorizer(self, header: Optional[str]) -> Authorizer:
        """
        Build an Authorizer from an Authorization header value.

        Accepted forms are ``Password <secret>`` and ``Token <token>``; the
        method is case insensitive.
        """
        if header is None:
            return RoleAuthorizer(self.resolve(None), anonymous=True)
        method, sep, content = header.partition(" ")
        if not sep:
            raise ValidationFailure(
                "Authorization header must contain a space separated method and content."
            )
        method = method.lower()
        if method == "password":
            return RoleAuthorizer(self.resolve(content))
        if method == "token":
            return TokenAuthorizer(content)
        raise ValidationFailure("Authorization header method must be 'Password' or 'Token'.")
