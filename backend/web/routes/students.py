"""Roster API: scoped student cards, class summary and the daily report."""
from __future__ import annotations

from datetime import date
from typing import Optional
import re

from fastapi import APIRouter, Query, Request

from backend.journal.calendar import civil_date
from backend.roster.usecases import (
    ClassSummaryUseCase,
    DailyInactiveReportUseCase,
    GetStudentUseCase,
    ListScopedStudentsUseCase,
)
from .common import _actor, _ctx, _json_private, _map_domain_error, _private_error

students_router = APIRouter(tags=["Roster"])

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@students_router.get("/api/students")
async def list_students(request: Request):
    """Students visible to the caller, one card per merged identity.

    Permissions:
        Any known actor; the list is empty when the actor's scope is empty.
    """
    ctx = _ctx(request)
    cards = ListScopedStudentsUseCase(ctx.directory, ctx.journal, ctx.aliases, ctx.cache).execute(
        _actor(request), ctx.now()
    )
    return _json_private({"data": cards})


@students_router.get("/api/students/{student_id}")
async def get_student(request: Request, student_id: str):
    ctx = _ctx(request)
    try:
        card = GetStudentUseCase(ctx.directory, ctx.journal, ctx.aliases).execute(
            _actor(request), student_id, ctx.now()
        )
    except LookupError as exc:
        return _map_domain_error(exc)
    return _json_private(card)


@students_router.get("/api/admin/classes")
async def class_summary(request: Request):
    ctx = _ctx(request)
    try:
        rows = ClassSummaryUseCase(ctx.directory, ctx.journal, ctx.aliases).execute(_actor(request), ctx.now())
    except PermissionError as exc:
        return _map_domain_error(exc)
    return _json_private({"data": rows})


@students_router.get("/api/reports/daily-inactive")
async def daily_inactive(request: Request, day_param: Optional[str] = Query(default=None, alias="date")):
    """Active/inactive split of the caller's students for one civil date.

    `date` defaults to today in the configured offset; format YYYY-MM-DD.
    """
    ctx = _ctx(request)
    if day_param:
        if not _DATE_RE.match(day_param):
            return _private_error("bad_request", status_code=400, detail="invalid_date")
        try:
            day = date.fromisoformat(day_param)
        except ValueError:
            return _private_error("bad_request", status_code=400, detail="invalid_date")
    else:
        day = civil_date(ctx.now(), ctx.offset)
    report = DailyInactiveReportUseCase(ctx.directory, ctx.journal, ctx.aliases).execute(_actor(request), day)
    return _json_private(report)
