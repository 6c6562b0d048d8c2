"""
Share routes.
Handles create, fetch, update and delete, plus the abilities description.
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, PlainTextResponse
from starlette.datastructures import Headers

from shareit.errors import NotFound, ValidationFailure
from shareit.models import Abilities, Share, ShareKind, ShareRequest
from shareit.service import ShareService

router = APIRouter()


def get_service(request: Request) -> ShareService:
    return request.app.state.shares


def _parse_kind(raw: Optional[str]) -> Optional[ShareKind]:
    if raw is None:
        return None
    try:
        return ShareKind(raw)
    except ValueError:
        raise ValidationFailure("Share-Type must be link, paste or file.") from None


MAX_DURATION_SECONDS = int(timedelta.max.total_seconds())


def _parse_expire_after(raw: Optional[str]) -> Optional[timedelta]:
    """Seconds from the Expire-After header, clamped to the longest timedelta."""
    if raw is None:
        return None
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        raise ValidationFailure("Expire-After must be an integer.")
    if len(raw) > len(str(MAX_DURATION_SECONDS)) or int(raw) > MAX_DURATION_SECONDS:
        return timedelta.max
    return timedelta(seconds=int(raw))


def parse_share_request(headers: Headers, name: Optional[str] = None) -> ShareRequest:
    """Build a ShareRequest from the request headers."""
    return ShareRequest(
        kind=_parse_kind(headers.get("share-type")),
        name=name,
        authorization=headers.get("authorization"),
        expire_after=_parse_expire_after(headers.get("expire-after")),
        language=headers.get("share-highlighting"),
        mime_type=headers.get("content-type"),
    )


def body_limit(request: Request, kind: Optional[ShareKind]) -> int:
    settings = request.app.state.settings
    if kind is ShareKind.LINK:
        return settings.MAX_LINK_LENGTH
    return settings.MAX_UPLOAD_SIZE


async def read_body(request: Request, limit: int) -> bytes:
    """
    Read the request body, refusing anything over ``limit`` bytes.

    Content-Length is checked up front for a quick answer, but the stream
    is counted too since the header may be missing or wrong.
    """
    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > limit:
        raise ValidationFailure("Body is too large.")
    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise ValidationFailure("Body is too large.")
        chunks.append(chunk)
    return b"".join(chunks)


def share_body_response(service: ShareService, share: Share, accept_redirect: bool) -> Response:
    """Render a share: redirect for links, the stored body otherwise."""
    headers = {"Share-Type": share.kind.value}
    if share.kind is ShareKind.LINK:
        headers["Location"] = share.link
        return PlainTextResponse(
            share.link,
            status_code=307 if accept_redirect else 200,
            headers=headers,
        )
    path = service.body_path(share)
    if share.kind is ShareKind.PASTE:
        headers["Share-Highlighting"] = share.language
        return FileResponse(path, media_type="text/plain; charset=utf-8", headers=headers)
    return FileResponse(path, media_type=share.mime_type, headers=headers)


def _accepts_redirect(request: Request) -> bool:
    return request.headers.get("accept-redirect") != "no"


async def _create(request: Request, name: Optional[str]) -> Response:
    share_request = parse_share_request(request.headers, name)
    body = await read_body(request, body_limit(request, share_request.kind))
    service = get_service(request)
    created = await run_in_threadpool(service.create, share_request, body)

    base_url = request.app.state.settings.APP_DOMAIN.rstrip("/")
    headers = {}
    if created.token is not None:
        headers["Share-Token"] = created.token
    return PlainTextResponse(f"{base_url}/{created.name}", status_code=201, headers=headers)


@router.get("/meta/abilities", response_model=Abilities)
async def abilities(request: Request) -> Abilities:
    """Describe what the presented credential allows."""
    service = get_service(request)
    return service.abilities(request.headers.get("authorization"))


@router.get("/")
async def index() -> None:
    raise NotFound("Path / not found.")


@router.post("/", status_code=201)
async def create_without_name(request: Request) -> Response:
    """Create a share under a random name."""
    return await _create(request, None)


@router.post("/{name}", status_code=201)
async def create_share(name: str, request: Request) -> Response:
    """
    Create a share under a chosen name.

    Headers:
        Share-Type: link, paste or file (required)
        Authorization: "Password <password>" (optional)
        Expire-After: lifetime in seconds (optional)
        Share-Highlighting: paste language (optional)
        Content-Type: file MIME type (optional)

    Returns:
        201 with the share URL as body and a Share-Token header when the
        caller may manage the share later
    """
    return await _create(request, name)


@router.get("/{name}")
async def fetch_share(name: str, request: Request) -> Response:
    """
    Fetch a share.

    Links redirect (307) unless "Accept-Redirect: no" is sent, in which
    case they are returned with 200. Pastes and files stream their body.
    """
    service = get_service(request)
    share = await run_in_threadpool(service.fetch, name)
    return share_body_response(service, share, _accepts_redirect(request))


@router.patch("/{name}")
async def update_share(name: str, request: Request) -> Response:
    """Update a share's expiry and, optionally, its content and metadata."""
    service = get_service(request)
    share = await run_in_threadpool(service.fetch, name)
    share_request = parse_share_request(request.headers, name)
    body = await read_body(request, body_limit(request, share.kind))
    updated = await run_in_threadpool(service.update, name, share_request, body)
    return share_body_response(service, updated, _accepts_redirect(request))


@router.delete("/{name}", status_code=204)
async def delete_share(name: str, request: Request) -> Response:
    service = get_service(request)
    await run_in_threadpool(service.delete, name, request.headers.get("authorization"))
    return Response(status_code=204)
