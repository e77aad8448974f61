from __future__ import annotations

from fastapi import HTTPException, Request

from app.config import settings
from app.core.access import Actor
from app.core.errors import DomainError
from app.models import Role
from app.request_context import current_actor_id


_STATUS_BY_KIND = {
    'validation': 422,
    'conflict': 409,
    'authorization': 403,
    'invalid_state': 422,
    'empty_cart': 422,
    'payment_failed': 402,
    'not_found': 404,
    'transient_store': 503,
}


def _parse_actor(raw_id, raw_role) -> Actor | None:
    try:
        user_id = int(raw_id or 0)
    except (TypeError, ValueError):
        return None
    if user_id <= 0:
        return None
    try:
        role = Role(str(raw_role or '').strip().lower())
    except ValueError:
        return None
    return Actor(user_id=user_id, role=role)


def require_actor(request: Request) -> Actor:
    """Identity comes from the upstream auth layer, never from this service."""
    actor = getattr(request.state, 'actor', None)
    if not isinstance(actor, Actor) and settings.trust_identity_headers:
        actor = _parse_actor(request.headers.get('x-actor-id'), request.headers.get('x-actor-role'))
    if not isinstance(actor, Actor):
        raise HTTPException(status_code=401, detail='Unauthorized')
    current_actor_id.set(actor.user_id)
    return actor


def require_role(actor: Actor, allowed_roles: set[Role]) -> None:
    if actor.role not in allowed_roles:
        raise HTTPException(status_code=403, detail='Forbidden')


def http_error(exc: DomainError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, 500)
    headers = {'Retry-After': '1'} if status_code == 503 else None
    return HTTPException(status_code=status_code, detail=exc.to_dict(), headers=headers)
