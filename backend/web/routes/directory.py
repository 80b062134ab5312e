"""Directory API: the parent's dependent link and the supervision listing."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.identity_access.errors import DependentAlreadyLinked
from backend.identity_access.usecases import (
    GetDependentUseCase,
    LinkDependentUseCase,
    ListSupervisionAssignmentsUseCase,
    UnlinkDependentUseCase,
)
from .common import _actor, _csrf_guard, _ctx, _json_private, _map_domain_error, _private_error

logger = logging.getLogger("harian.web")

directory_router = APIRouter(tags=["Directory"])


class DependentLink(BaseModel):
    student_id: str


@directory_router.get("/api/parent/dependent")
async def get_dependent(request: Request):
    try:
        data = GetDependentUseCase(_ctx(request).directory).execute(_actor(request))
    except PermissionError as exc:
        return _map_domain_error(exc)
    return _json_private(data)


@directory_router.post("/api/parent/dependent")
async def link_dependent(request: Request, payload: DependentLink):
    """Link the calling parent to a student.

    Behavior:
        - 200 with the link on success
        - 400 for a blank id, 404 unless the target is a student
        - 409 `already_linked` when another parent holds the student
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    try:
        data = LinkDependentUseCase(_ctx(request).directory).execute(_actor(request), payload.student_id)
    except DependentAlreadyLinked:
        logger.info("parent link rejected: student already linked")
        return _private_error("already_linked", status_code=409)
    except (ValueError, LookupError, PermissionError) as exc:
        return _map_domain_error(exc)
    return _json_private(data)


@directory_router.delete("/api/parent/dependent")
async def unlink_dependent(request: Request):
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    try:
        data = UnlinkDependentUseCase(_ctx(request).directory).execute(_actor(request))
    except (ValueError, PermissionError) as exc:
        return _map_domain_error(exc)
    return _json_private(data)


@directory_router.get("/api/admin/supervision-assignments")
async def supervision_assignments(request: Request):
    """Students with the supervisors assigned to their class (ADMIN only)."""
    try:
        rows = ListSupervisionAssignmentsUseCase(_ctx(request).directory).execute(_actor(request))
    except PermissionError as exc:
        return _map_domain_error(exc)
    return _json_private({"data": rows})
