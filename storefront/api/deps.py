# storefront/api/deps.py
import uuid

from fastapi import Header, HTTPException, status

from storefront.domain.context import ActorContext


def _parse_user_id(raw: str | None) -> uuid.UUID | None:
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid X-User-Id header") from exc


def _primary_locale(accept_language: str | None) -> str:
    if not accept_language:
        return "en"
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first.split("-")[0].lower() or "en"


async def get_actor(
    x_user_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
) -> ActorContext:
    """Caller identity as resolved by the upstream gateway."""
    return ActorContext(
        user_id=_parse_user_id(x_user_id),
        session_id=x_session_id or None,
        locale=_primary_locale(accept_language),
    )


async def require_actor(
    x_user_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
) -> ActorContext:
    actor = await get_actor(x_user_id, x_session_id, accept_language)
    if actor.is_anonymous:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "X-User-Id or X-Session-Id header is required")
    return actor


async def require_user(
    x_user_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    accept_language: str | None = Header(default=None),
) -> ActorContext:
    actor = await get_actor(x_user_id, x_session_id, accept_language)
    if actor.user_id is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "X-User-Id header is required")
    return actor
