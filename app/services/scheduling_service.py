from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy.orm import Session

from app.audit import AuditEntry, emit_audit
from app.config import settings
from app.core.access import Actor, require_access, require_teacher
from app.core.errors import ConflictError, InvalidStateError, ValidationError
from app.core.locks import acquire_database_lock, keyed_lock
from app.core.time_provider import TimeProvider, default_time_provider, to_utc_naive
from app.db import transaction
from app.models import LearningSession, SessionStatus


logger = logging.getLogger(__name__)

_LOCK_SCOPE = 'teacher'
_PATCHABLE_FIELDS = frozenset(
    {
        'student_id',
        'subject_id',
        'course_id',
        'title',
        'start_time',
        'end_time',
        'location',
        'notes',
        'attended',
    }
)
_REQUIRED_IDS = ('student_id', 'subject_id')
_MAX_TEXT_LENGTH = 255
_DEFAULT_CANCEL_REASON = 'Cancelled by teacher'


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Half-open: a session ending at 11:00 leaves 11:00 free for the next one.
    return a_start < b_end and a_end > b_start


def _normalize_interval(start_time: datetime | None, end_time: datetime | None) -> tuple[datetime, datetime]:
    if start_time is None or end_time is None:
        raise ValidationError('start_time and end_time are required', field='start_time')
    start = to_utc_naive(start_time)
    end = to_utc_naive(end_time)
    if end <= start:
        raise ValidationError('end_time must be after start_time', field='end_time')
    duration_minutes = (end - start).total_seconds() / 60.0
    if duration_minutes > settings.max_session_minutes:
        raise ValidationError(
            f'Session may not be longer than {settings.max_session_minutes} minutes',
            field='end_time',
        )
    return start, end


def _ensure_not_past(start: datetime, now: datetime) -> None:
    if start < now:
        raise ValidationError('start_time must not be in the past', field='start_time')


def _require_id(value: Any, field: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} is required', field=field) from None
    if parsed <= 0:
        raise ValidationError(f'{field} is required', field=field)
    return parsed


def _clean_text(value: str | None, field: str, *, limit: int | None = _MAX_TEXT_LENGTH) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    if limit is not None and len(cleaned) > limit:
        raise ValidationError(f'{field} must be at most {limit} characters', field=field)
    return cleaned or None


def _clean_location(value: str | None) -> str:
    return _clean_text(value, 'location') or settings.default_session_location


def _normalize_status(status: SessionStatus | str | None) -> str | None:
    if status is None:
        return None
    value = status.value if isinstance(status, SessionStatus) else str(status).strip().lower()
    if value not in {item.value for item in SessionStatus}:
        raise ValidationError('Unknown session status', field='status')
    return value


def _conflict_payload(row: LearningSession) -> dict[str, Any]:
    return {
        'session_id': row.id,
        'start_time': row.start_time.isoformat(),
        'end_time': row.end_time.isoformat(),
        'status': row.status,
    }


def _audit(row: LearningSession, actor: Actor, occurred_at: datetime, **data: Any) -> AuditEntry:
    return AuditEntry(
        entity='learning_session',
        entity_id=int(row.id),
        status=str(row.status),
        occurred_at=occurred_at,
        actor_id=actor.user_id,
        data=data,
    )


def find_conflicts(
    db: Session,
    teacher_id: int,
    start_time: datetime,
    end_time: datetime,
    *,
    exclude_session_id: int | None = None,
) -> list[LearningSession]:
    query = db.query(LearningSession).filter(
        LearningSession.teacher_id == teacher_id,
        LearningSession.status != SessionStatus.CANCELLED.value,
        LearningSession.start_time < end_time,
        LearningSession.end_time > start_time,
    )
    if exclude_session_id is not None:
        query = query.filter(LearningSession.id != exclude_session_id)
    return query.order_by(LearningSession.start_time.asc(), LearningSession.id.asc()).all()


def _raise_on_conflicts(
    db: Session,
    teacher_id: int,
    start: datetime,
    end: datetime,
    *,
    exclude_session_id: int | None = None,
) -> None:
    conflicts = find_conflicts(db, teacher_id, start, end, exclude_session_id=exclude_session_id)
    if not conflicts:
        return
    logger.info(
        'session_conflict_detected',
        extra={
            'teacher_id': teacher_id,
            'requested_start': start.isoformat(),
            'requested_end': end.isoformat(),
            'conflict_ids': [row.id for row in conflicts],
        },
    )
    raise ConflictError(
        'Session overlaps an existing booking',
        conflicts=[_conflict_payload(row) for row in conflicts],
    )


def _load_owned_session(db: Session, session_id: int, actor: Actor, *, for_update: bool = False) -> LearningSession:
    query = db.query(LearningSession).filter(LearningSession.id == session_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    row = query.first()
    # Missing and foreign sessions get the same denial.
    require_access(actor, row)
    return row


def list_sessions(
    db: Session,
    teacher_id: int,
    start_date: date,
    end_date: date,
    *,
    subject_id: int | None = None,
    course_id: int | None = None,
    student_id: int | None = None,
    status: SessionStatus | str | None = None,
) -> list[LearningSession]:
    if end_date < start_date:
        raise ValidationError('end_date must be greater than or equal to start_date', field='end_date')
    status_value = _normalize_status(status)
    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min)

    query = db.query(LearningSession).filter(
        LearningSession.teacher_id == teacher_id,
        LearningSession.start_time >= range_start,
        LearningSession.start_time < range_end,
    )
    if subject_id is not None:
        query = query.filter(LearningSession.subject_id == subject_id)
    if course_id is not None:
        query = query.filter(LearningSession.course_id == course_id)
    if student_id is not None:
        query = query.filter(LearningSession.student_id == student_id)
    if status_value is not None:
        query = query.filter(LearningSession.status == status_value)
    return query.order_by(LearningSession.start_time.asc(), LearningSession.id.asc()).all()


def get_session(db: Session, session_id: int, *, actor: Actor) -> LearningSession:
    return _load_owned_session(db, session_id, actor)


def create_session(
    db: Session,
    *,
    actor: Actor,
    student_id: int,
    subject_id: int,
    start_time: datetime,
    end_time: datetime,
    course_id: int | None = None,
    title: str | None = None,
    location: str | None = None,
    notes: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> LearningSession:
    require_teacher(actor)
    start, end = _normalize_interval(start_time, end_time)
    now = time_provider.utc_now()
    _ensure_not_past(start, now)
    values = {
        'student_id': _require_id(student_id, 'student_id'),
        'subject_id': _require_id(subject_id, 'subject_id'),
        'course_id': None if course_id is None else _require_id(course_id, 'course_id'),
        'title': _clean_text(title, 'title'),
        'location': _clean_location(location),
        'notes': _clean_text(notes, 'notes', limit=None),
    }
    teacher_id = actor.user_id

    with keyed_lock(_LOCK_SCOPE, teacher_id):
        with transaction(db):
            acquire_database_lock(db, _LOCK_SCOPE, teacher_id)
            _raise_on_conflicts(db, teacher_id, start, end)
            row = LearningSession(
                teacher_id=teacher_id,
                start_time=start,
                end_time=end,
                status=SessionStatus.SCHEDULED.value,
                created_at=now,
                updated_at=now,
                **values,
            )
            db.add(row)
            db.flush()
        db.refresh(row)

    logger.info('session_created', extra={'session_id': row.id, 'teacher_id': teacher_id})
    emit_audit([_audit(row, actor, now)])
    return row


def update_session(
    db: Session,
    session_id: int,
    *,
    actor: Actor,
    patch: dict[str, Any],
    time_provider: TimeProvider = default_time_provider,
) -> LearningSession:
    changes = dict(patch or {})
    if 'status' in changes:
        raise ValidationError('status changes go through cancel or complete', field='status')
    unknown = sorted(set(changes) - _PATCHABLE_FIELDS)
    if unknown:
        raise ValidationError('Unsupported fields in update', fields=unknown)
    for field in _REQUIRED_IDS:
        if field in changes:
            changes[field] = _require_id(changes[field], field)
    if changes.get('course_id') is not None:
        changes['course_id'] = _require_id(changes['course_id'], 'course_id')
    if 'title' in changes:
        changes['title'] = _clean_text(changes['title'], 'title')
    if 'notes' in changes:
        changes['notes'] = _clean_text(changes['notes'], 'notes', limit=None)
    if 'location' in changes:
        changes['location'] = _clean_location(changes['location'])

    now = time_provider.utc_now()
    for bound in ('start_time', 'end_time'):
        if bound in changes and changes[bound] is None:
            changes.pop(bound)
        elif bound in changes:
            changes[bound] = to_utc_naive(changes[bound])
    reschedule = 'start_time' in changes or 'end_time' in changes
    if 'start_time' in changes:
        _ensure_not_past(changes['start_time'], now)
    if 'start_time' in changes and 'end_time' in changes:
        _normalize_interval(changes['start_time'], changes['end_time'])
    elif reschedule:
        # One bound patched: validate against the stored other bound before any write.
        stored = _load_owned_session(db, session_id, actor)
        _normalize_interval(
            changes.get('start_time', stored.start_time),
            changes.get('end_time', stored.end_time),
        )
        db.rollback()

    # Only the owner can write, so the actor's id is the teacher key to serialize on.
    with keyed_lock(_LOCK_SCOPE, actor.user_id):
        with transaction(db):
            acquire_database_lock(db, _LOCK_SCOPE, actor.user_id)
            row = _load_owned_session(db, session_id, actor, for_update=True)
            if row.status == SessionStatus.CANCELLED.value:
                raise InvalidStateError('cancelled sessions cannot be changed', session_id=row.id)
            if reschedule:
                if row.status != SessionStatus.SCHEDULED.value:
                    raise InvalidStateError('only scheduled sessions can be rescheduled', session_id=row.id)
                start, end = _normalize_interval(
                    changes.get('start_time', row.start_time),
                    changes.get('end_time', row.end_time),
                )
                _raise_on_conflicts(db, int(row.teacher_id), start, end, exclude_session_id=row.id)
                changes['start_time'], changes['end_time'] = start, end
            for field, value in changes.items():
                setattr(row, field, value)
            row.updated_at = now
        db.refresh(row)

    logger.info(
        'session_updated',
        extra={'session_id': row.id, 'teacher_id': row.teacher_id, 'fields': sorted(changes)},
    )
    return row


def cancel_session(
    db: Session,
    session_id: int,
    *,
    actor: Actor,
    reason: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> LearningSession:
    clean_reason = _clean_text(reason, 'reason') or _DEFAULT_CANCEL_REASON
    now = time_provider.utc_now()

    with keyed_lock(_LOCK_SCOPE, actor.user_id):
        with transaction(db):
            row = _load_owned_session(db, session_id, actor, for_update=True)
            if row.start_time <= now:
                raise InvalidStateError('cannot cancel a past session', session_id=row.id)
            if row.status != SessionStatus.SCHEDULED.value:
                raise InvalidStateError(f'session is already {row.status}', session_id=row.id)
            row.status = SessionStatus.CANCELLED.value
            row.cancellation_reason = clean_reason
            row.cancelled_at = now
            row.updated_at = now
        db.refresh(row)

    logger.info('session_cancelled', extra={'session_id': row.id, 'teacher_id': row.teacher_id})
    emit_audit([_audit(row, actor, now, reason=clean_reason)])
    return row


def complete_session(
    db: Session,
    session_id: int,
    *,
    actor: Actor,
    attended: bool | None = None,
    performance_score: int | None = None,
    notes: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> LearningSession:
    if performance_score is not None and not 0 <= int(performance_score) <= 100:
        raise ValidationError('performance_score must be between 0 and 100', field='performance_score')
    clean_notes = _clean_text(notes, 'notes', limit=None)
    now = time_provider.utc_now()

    with keyed_lock(_LOCK_SCOPE, actor.user_id):
        with transaction(db):
            row = _load_owned_session(db, session_id, actor, for_update=True)
            if row.status != SessionStatus.SCHEDULED.value:
                raise InvalidStateError(f'session is already {row.status}', session_id=row.id)
            if row.start_time > now:
                raise InvalidStateError('session has not started yet', session_id=row.id)
            row.status = SessionStatus.COMPLETED.value
            row.completed_at = now
            row.updated_at = now
            if attended is not None:
                row.attended = bool(attended)
            if performance_score is not None:
                row.performance_score = int(performance_score)
            if clean_notes is not None:
                row.notes = clean_notes
        db.refresh(row)

    logger.info('session_completed', extra={'session_id': row.id, 'teacher_id': row.teacher_id})
    emit_audit([_audit(row, actor, now, attended=row.attended)])
    return row
