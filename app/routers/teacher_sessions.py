from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.errors import DomainError
from app.core.router_guard import http_error, require_actor, require_role
from app.db import get_db
from app.route_logging import EndpointNameRoute
from app.models import LearningSession, Role
from app.schemas import (
    SessionCancelRequest,
    SessionCompleteRequest,
    SessionCreateRequest,
    SessionStatusFilter,
    SessionUpdateRequest,
)
from app.services.scheduling_service import (
    cancel_session,
    complete_session,
    create_session,
    get_session,
    list_sessions,
    update_session,
)


router = APIRouter(prefix='/api/teacher/sessions', tags=['Teacher Sessions'], route_class=EndpointNameRoute)


def _serialize(row: LearningSession) -> dict:
    return {
        'id': row.id,
        'teacher_id': row.teacher_id,
        'student_id': row.student_id,
        'subject_id': row.subject_id,
        'course_id': row.course_id,
        'title': row.title,
        'start_time': row.start_time.isoformat(),
        'end_time': row.end_time.isoformat(),
        'status': row.status,
        'attended': row.attended,
        'performance_score': row.performance_score,
        'location': row.location,
        'notes': row.notes,
        'cancellation_reason': row.cancellation_reason,
    }


@router.get('')
def list_teacher_sessions(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    subject_id: int | None = Query(default=None),
    course_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    status: SessionStatusFilter | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = require_actor(request)
    require_role(actor, {Role.TEACHER})
    try:
        rows = list_sessions(
            db,
            actor.user_id,
            start_date,
            end_date,
            subject_id=subject_id,
            course_id=course_id,
            student_id=student_id,
            status=status,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': [_serialize(row) for row in rows]}


@router.post('', status_code=201)
def create(payload: SessionCreateRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        row = create_session(
            db,
            actor=actor,
            student_id=payload.student_id,
            subject_id=payload.subject_id,
            course_id=payload.course_id,
            title=payload.title,
            start_time=payload.start_time,
            end_time=payload.end_time,
            location=payload.location,
            notes=payload.notes,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': _serialize(row)}


@router.get('/{session_id}')
def get_one(session_id: int, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        row = get_session(db, session_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': _serialize(row)}


@router.patch('/{session_id}')
def update(session_id: int, payload: SessionUpdateRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        row = update_session(db, session_id, actor=actor, patch=payload.model_dump(exclude_unset=True))
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': _serialize(row)}


@router.post('/{session_id}/cancel')
def cancel(session_id: int, payload: SessionCancelRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        row = cancel_session(db, session_id, actor=actor, reason=payload.reason)
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': _serialize(row)}


@router.post('/{session_id}/complete')
def complete(session_id: int, payload: SessionCompleteRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        row = complete_session(
            db,
            session_id,
            actor=actor,
            attended=payload.attended,
            performance_score=payload.performance_score,
            notes=payload.notes,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return {'success': True, 'data': _serialize(row)}
