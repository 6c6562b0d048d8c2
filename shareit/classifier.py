"""
Validation of the kind-specific share metadata: link URLs, paste
highlighting languages and file MIME types.

Everything here is a pure function of the policy and the client input.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

from pydantic import AnyUrl, TypeAdapter, ValidationError

from shareit.errors import ValidationFailure
from shareit.models import ShareKind

_URL_ADAPTER = TypeAdapter(AnyUrl)


@dataclass(frozen=True)
class ContentPolicy:
    """Configured restrictions on share content."""

    allowed_link_schemes: Tuple[str, ...] = ("http", "https")
    highlighting_languages: Tuple[str, ...] = ()
    default_language: str = "auto"
    allowed_mime_types: Tuple[str, ...] = ()
    disallowed_mime_types: Tuple[str, ...] = field(default=("text/html",))
    default_mime_type: str = "application/octet-stream"

    @classmethod
    def from_settings(cls, settings) -> "ContentPolicy":
        return cls(
            allowed_link_schemes=tuple(settings.ALLOWED_LINK_SCHEMES),
            highlighting_languages=tuple(settings.HIGHLIGHTING_LANGUAGES),
            default_language=settings.DEFAULT_HIGHLIGHTING_LANGUAGE,
            allowed_mime_types=tuple(settings.ALLOWED_MIME_TYPES),
            disallowed_mime_types=tuple(settings.DISALLOWED_MIME_TYPES),
            default_mime_type=settings.DEFAULT_MIME_TYPE,
        )


def classify_link(policy: ContentPolicy, raw: str) -> str:
    """Parse a link body and return its canonical form."""
    try:
        url = _URL_ADAPTER.validate_python(raw.strip())
    except ValidationError:
        raise ValidationFailure("Invalid URL.") from None
    schemes = policy.allowed_link_schemes
    if schemes and url.scheme not in schemes:
        raise ValidationFailure("Invalid URL scheme.")
    return str(url)


def classify_paste(policy: ContentPolicy, language: Optional[str]) -> str:
    if language is None:
        return policy.default_language
    if language not in policy.highlighting_languages:
        raise ValidationFailure("Given Share-Highlighting is not supported.")
    return language


def _media_type(mime_type: str) -> str:
    # "text/html; charset=utf-8" and "TEXT/HTML" are both text/html.
    return mime_type.split(";", 1)[0].strip().lower()


def mime_type_allowed(policy: ContentPolicy, mime_type: str) -> bool:
    """A non-empty whitelist decides alone; otherwise the blacklist applies."""
    media_type = _media_type(mime_type)
    if policy.allowed_mime_types:
        return media_type in {_media_type(m) for m in policy.allowed_mime_types}
    return media_type not in {_media_type(m) for m in policy.disallowed_mime_types}


def classify_file(policy: ContentPolicy, mime_type: Optional[str]) -> str:
    effective = mime_type.strip() if mime_type and mime_type.strip() else policy.default_mime_type
    if not mime_type_allowed(policy, effective):
        raise ValidationFailure("Given Content-Type is not allowed.")
    return effective


def classify_metadata(
    policy: ContentPolicy,
    kind: ShareKind,
    language: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> Optional[str]:
    """
    Validate the header-borne metadata for pastes and files.

    Links carry their metadata in the body and go through classify_link.
    """
    if kind is ShareKind.PASTE:
        return classify_paste(policy, language)
    if kind is ShareKind.FILE:
        return classify_file(policy, mime_type)
    return None
