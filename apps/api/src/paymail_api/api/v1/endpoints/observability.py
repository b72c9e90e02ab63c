"""Observability endpoints for notification dispatch."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from paymail_api.api.dependencies.security import require_observability_api_key
from paymail_api.observability.notifications import get_notification_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/notifications",
    dependencies=[Depends(require_observability_api_key)],
    summary="Notification dispatch snapshot",
)
async def get_notification_snapshot() -> dict[str, object]:
    """Outcome counters per notification kind plus the most recent send and failure."""
    store = get_notification_store()
    return store.snapshot().as_dict()
