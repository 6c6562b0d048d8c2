"""
Share entity and pydantic models for request/response validation.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ShareKind(str, Enum):
    """The three kinds of share. Fixed at creation."""

    LINK = "link"
    PASTE = "paste"
    FILE = "file"

    @property
    def payload_field(self) -> str:
        return _PAYLOAD_FIELDS[self]

    @property
    def has_body(self) -> bool:
        """Whether shares of this kind keep their content in blob storage."""
        return self is not ShareKind.LINK


_PAYLOAD_FIELDS = {
    ShareKind.LINK: "link",
    ShareKind.PASTE: "language",
    ShareKind.FILE: "mime_type",
}


class Share(BaseModel):
    """
    A named, optionally expiring link, paste or file.

    Build shares with the per-kind constructors (``Share.new_link`` and
    friends) so that exactly the payload field belonging to ``kind`` is set.
    Records loaded from storage are checked by the validator below.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ShareKind
    expiry: Optional[datetime] = None
    token: Optional[str] = None
    link: Optional[str] = None
    language: Optional[str] = None
    mime_type: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "Share":
        for kind, field in _PAYLOAD_FIELDS.items():
            is_set = getattr(self, field) is not None
            if is_set != (kind is self.kind):
                raise ValueError(f"{field} must be set exactly when kind is {kind.value}")
        return self

    @classmethod
    def new_link(
        cls,
        name: str,
        link: str,
        expiry: Optional[datetime] = None,
        token: Optional[str] = None,
    ) -> "Share":
        return cls(name=name, kind=ShareKind.LINK, expiry=expiry, token=token, link=link)

    @classmethod
    def new_paste(
        cls,
        name: str,
        language: str,
        expiry: Optional[datetime] = None,
        token: Optional[str] = None,
    ) -> "Share":
        return cls(name=name, kind=ShareKind.PASTE, expiry=expiry, token=token, language=language)

    @classmethod
    def new_file(
        cls,
        name: str,
        mime_type: str,
        expiry: Optional[datetime] = None,
        token: Optional[str] = None,
    ) -> "Share":
        return cls(name=name, kind=ShareKind.FILE, expiry=expiry, token=token, mime_type=mime_type)

    @classmethod
    def new(
        cls,
        kind: ShareKind,
        name: str,
        payload: str,
        expiry: Optional[datetime] = None,
        token: Optional[str] = None,
    ) -> "Share":
        return cls(name=name, kind=kind, expiry=expiry, token=token, **{kind.payload_field: payload})

    @property
    def payload(self) -> str:
        """The kind-specific metadata: link URL, paste language or MIME type."""
        return getattr(self, self.kind.payload_field)

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and self.expiry <= now

    def with_expiry(self, expiry: Optional[datetime]) -> "Share":
        return self.model_copy(update={"expiry": expiry})

    def with_payload(self, payload: str) -> "Share":
        return self.model_copy(update={self.kind.payload_field: payload})


class ShareRequest(BaseModel):
    """Typed description of a create/update request, parsed from headers."""

    kind: Optional[ShareKind] = None
    name: Optional[str] = None
    authorization: Optional[str] = None
    expire_after: Optional[timedelta] = None
    language: Optional[str] = None
    mime_type: Optional[str] = None


class CreatedShare(BaseModel):
    """Result of a successful creation."""

    name: str
    token: Optional[str] = None


class NameFeatures(BaseModel):
    """Restrictions on custom names."""

    min_length: int
    max_length: int


class Abilities(BaseModel):
    """Schema for the features available to the current credential."""

    login: bool = Field(..., description="Whether logging in could grant more abilities")
    create_file: bool
    create_paste: bool
    create_link: bool
    update_own: bool
    update_any: bool
    custom_names: Optional[NameFeatures] = Field(
        None, description="Custom name restrictions, null if custom names are not allowed"
    )
    mime_types_whitelist: List[str]
    mime_types_blacklist: List[str] = Field(
        ..., description="Ignored when the whitelist is not empty"
    )
    link_schemes: List[str]
    highlighting_languages: List[str]


class HealthCheck(BaseModel):
    """Schema for health check response."""
    ok: bool = Field(..., description="Is the application healthy?")
