"""
Journal API: submission window, daily records, validation and comments.

Permissions:
    The route guard only guarantees a known actor. Every handler re-checks the
    concrete resource through the policy evaluator (via the use cases).
"""
from __future__ import annotations

from typing import Optional
import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from backend.journal.errors import SubmissionConflict
from backend.journal.usecases import (
    AddCommentInput,
    AddCommentUseCase,
    CreateRecordInput,
    CreateRecordUseCase,
    GetRecordUseCase,
    ListCommentsUseCase,
    ListRecordsInput,
    ListRecordsUseCase,
    SetValidationInput,
    SetValidationUseCase,
    SubmissionStatusUseCase,
    records_to_dicts,
)
from .common import _actor, _csrf_guard, _ctx, _json_private, _map_domain_error, _private_error

logger = logging.getLogger("harian.web")

journal_router = APIRouter(tags=["Journal"])


class WindowUpdate(BaseModel):
    is_open: bool


class RecordCreate(BaseModel):
    field_values: dict[str, Optional[str]] = Field(default_factory=dict)


class ValidationUpdate(BaseModel):
    validated: bool
    validated_by: Optional[str] = None


class CommentCreate(BaseModel):
    content: str
    record_id: Optional[str] = None
    author_id: Optional[str] = None


@journal_router.get("/api/submission-window")
async def get_submission_window(request: Request):
    return _json_private(_ctx(request).window.read().to_dict())


@journal_router.put("/api/submission-window")
async def set_submission_window(request: Request, payload: WindowUpdate):
    """Open or close the global submission window.

    Permissions:
        ADMIN only; the change records `changed_by` for audit.
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    ctx = _ctx(request)
    try:
        state = ctx.window.set_open(_actor(request), payload.is_open, ctx.now())
    except PermissionError as exc:
        return _map_domain_error(exc)
    return _json_private(state.to_dict())


@journal_router.get("/api/tasks/{task_id}/submission-status")
async def submission_status(request: Request, task_id: str):
    ctx = _ctx(request)
    try:
        decision = SubmissionStatusUseCase(ctx.gate).execute(_actor(request), task_id, ctx.now())
    except ValueError as exc:
        return _map_domain_error(exc)
    return _json_private(decision.to_dict())


@journal_router.post("/api/tasks/{task_id}/records")
async def create_record(request: Request, task_id: str, payload: RecordCreate):
    """Submit today's record for a task.

    Behavior:
        - 201 with the record on success
        - 400 on invalid task id or field values
        - 403 `window_closed` for students while the window is closed
        - 409 `already_submitted` with `submitted_at` on a duplicate
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    ctx = _ctx(request)
    try:
        record = CreateRecordUseCase(ctx.gate).execute(
            _actor(request), CreateRecordInput(task_id=task_id, field_values=payload.field_values), ctx.now()
        )
    except SubmissionConflict as exc:
        logger.info("duplicate submission rejected")
        submitted_at = exc.submitted_at.isoformat() if exc.submitted_at else None
        return _private_error("already_submitted", status_code=409, submitted_at=submitted_at)
    except (ValueError, PermissionError) as exc:
        return _map_domain_error(exc)
    return _json_private(record.to_dict(), status_code=201)


@journal_router.get("/api/records")
async def list_records(
    request: Request,
    owner_id: Optional[str] = None,
    task_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
):
    ctx = _ctx(request)
    records = ListRecordsUseCase(ctx.journal).execute(
        _actor(request), ListRecordsInput(owner_id=owner_id, task_id=task_id, limit=limit, offset=offset)
    )
    return _json_private({"data": records_to_dicts(records)})


@journal_router.get("/api/records/{record_id}")
async def get_record(request: Request, record_id: str):
    ctx = _ctx(request)
    try:
        record = GetRecordUseCase(ctx.journal, ctx.directory).execute(_actor(request), record_id)
    except LookupError as exc:
        return _map_domain_error(exc)
    return _json_private(record.to_dict())


@journal_router.patch("/api/records/{record_id}/validation")
async def set_record_validation(request: Request, record_id: str, payload: ValidationUpdate):
    """Set or clear a record's validation flag (staff in scope only)."""
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    ctx = _ctx(request)
    try:
        record = SetValidationUseCase(ctx.journal, ctx.directory).execute(
            _actor(request),
            SetValidationInput(record_id=record_id, validated=payload.validated, validated_by=payload.validated_by),
        )
    except (LookupError, PermissionError) as exc:
        return _map_domain_error(exc)
    return _json_private(record.to_dict())


@journal_router.get("/api/students/{student_id}/comments")
async def list_comments(request: Request, student_id: str, limit: int = 50, offset: int = 0):
    ctx = _ctx(request)
    try:
        comments = ListCommentsUseCase(ctx.journal, ctx.directory).execute(
            _actor(request), student_id, limit=limit, offset=offset
        )
    except LookupError as exc:
        return _map_domain_error(exc)
    return _json_private({"data": [c.to_dict() for c in comments]})


@journal_router.post("/api/students/{student_id}/comments")
async def add_comment(request: Request, student_id: str, payload: CommentCreate):
    """Comment on a student in scope; the author is always the caller."""
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    ctx = _ctx(request)
    try:
        comment = AddCommentUseCase(ctx.journal, ctx.directory).execute(
            _actor(request),
            AddCommentInput(
                student_id=student_id,
                content=payload.content,
                record_id=payload.record_id,
                author_id=payload.author_id,
            ),
            ctx.now(),
        )
    except (ValueError, LookupError, PermissionError) as exc:
        return _map_domain_error(exc)
    return _json_private(comment.to_dict(), status_code=201)
