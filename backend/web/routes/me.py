"""Identity endpoint: who am I, what is my scope, where do I land."""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.web.guard import landing_for
from .common import _actor, _json_private

me_router = APIRouter(tags=["Identity"])


@me_router.get("/api/me")
async def get_me(request: Request):
    """Return the resolved actor (ids and scope only, no contact data)."""
    actor = _actor(request)
    return _json_private(
        {
            "id": actor.id,
            "role": actor.role.value,
            "home_class": actor.home_class,
            "supervised_classes": sorted(actor.supervised_classes),
            "can_supervise": actor.can_supervise,
            "dependent_id": actor.dependent_id,
            "landing": landing_for(actor),
        }
    )
