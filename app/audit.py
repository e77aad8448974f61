from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable


logger = logging.getLogger('app.audit')


@dataclass(frozen=True)
class AuditEntry:
    entity: str
    entity_id: int
    status: str
    occurred_at: datetime
    actor_id: int = 0
    data: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload['occurred_at'] = self.occurred_at.isoformat()
        return payload


class AuditSink:
    def record(self, entry: AuditEntry) -> None:
        raise NotImplementedError


class LogAuditSink(AuditSink):
    def record(self, entry: AuditEntry) -> None:
        logger.info(
            'audit_entry entity=%s entity_id=%s status=%s actor_id=%s occurred_at=%s',
            entry.entity,
            entry.entity_id,
            entry.status,
            entry.actor_id,
            entry.occurred_at.isoformat(),
        )


_sink: AuditSink = LogAuditSink()


def set_audit_sink(sink: AuditSink) -> None:
    global _sink
    _sink = sink


def get_audit_sink() -> AuditSink:
    return _sink


def emit_audit(entries: Iterable[AuditEntry]) -> None:
    # Called after commit; a failing sink must not undo a committed change.
    for entry in entries:
        try:
            _sink.record(entry)
        except Exception:
            logger.exception('audit_sink_failed entity=%s entity_id=%s', entry.entity, entry.entity_id)
