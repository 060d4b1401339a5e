"""Sync log endpoints. Logs are append-only: list and create only."""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import get_integration_queries, get_sync_log_queries
from ..exceptions import BackendError
from ..queries import IntegrationQueries, SyncLogQueries

router = APIRouter(
    prefix="/sync-logs",
    tags=["Sync Logs"],
    responses={401: {"model": schemas.ErrorResponse, "description": "Unauthorized"}},
)


@router.get("", response_model=List[schemas.SyncLogWithIntegration], summary="Recent sync logs")
def list_sync_logs(
    limit: int = Query(50, ge=1, le=500),
    queries: SyncLogQueries = Depends(get_sync_log_queries),
):
    return queries.list_with_integrations(limit=limit)


@router.post("", response_model=schemas.SyncLog, status_code=status.HTTP_201_CREATED, summary="Append a sync log")
def create_sync_log(
    payload: schemas.SyncLogInsert,
    queries: SyncLogQueries = Depends(get_sync_log_queries),
    integrations: IntegrationQueries = Depends(get_integration_queries),
):
    # The referenced integration must belong to the caller
    if integrations.get_by_id(payload.integration_id) is None:
        raise BackendError("Integration not found", code="not_found", status=404)
    return queries.create(payload)
