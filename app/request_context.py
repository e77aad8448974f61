from __future__ import annotations

from contextvars import ContextVar


current_endpoint: ContextVar[str] = ContextVar('current_endpoint', default='background')
current_actor_id: ContextVar[int] = ContextVar('current_actor_id', default=0)
