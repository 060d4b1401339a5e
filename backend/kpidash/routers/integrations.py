"""Integration endpoints: connected store platforms and their sync results.

WHAT:
    CRUD over the caller's integrations. Responses never include the stored
    API key, only `has_api_key`. `POST /{id}/syncs` records a sync outcome
    through kpidash/services/sync_service.py.

REFERENCES:
    - kpidash/utils/integrations.py (health and display helpers)
    - kpidash/services/sync_service.py (record_sync)
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Response, status

from .. import schemas
from ..deps import get_client, get_integration_queries
from ..exceptions import BackendError
from ..hosted.client import HostedClient
from ..queries import IntegrationQueries
from ..services.sync_service import record_sync
from ..utils.integrations import enhance_integration_data
from ..validation import require_valid, validate_integration_form

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/integrations",
    tags=["Integrations"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
    },
)


@router.get("", response_model=List[schemas.IntegrationWithLastSync], summary="List integrations")
def list_integrations(queries: IntegrationQueries = Depends(get_integration_queries)):
    return [enhance_integration_data(row) for row in queries.list()]


@router.get("/{integration_id}", response_model=schemas.IntegrationWithLastSync, summary="Get an integration")
def get_integration(integration_id: str, queries: IntegrationQueries = Depends(get_integration_queries)):
    row = queries.get_by_id(integration_id)
    if row is None:
        raise BackendError("Integration not found", code="not_found", status=404)
    return enhance_integration_data(row)


@router.post(
    "",
    response_model=schemas.IntegrationWithLastSync,
    status_code=status.HTTP_201_CREATED,
    summary="Connect a platform",
    description="Accepts `platform`, `store_name`, optional `sync_frequency` (default daily) and `api_key`.",
)
def create_integration(
    form: Dict[str, Any] = Body(...),
    queries: IntegrationQueries = Depends(get_integration_queries),
):
    fields = require_valid(validate_integration_form(form))
    row = queries.create(fields)
    logger.info("[INTEGRATIONS] Connected %s store %s", row.platform, row.store_name)
    return enhance_integration_data(row)


@router.put("/{integration_id}", response_model=schemas.IntegrationWithLastSync, summary="Update an integration")
def update_integration(
    integration_id: str,
    payload: schemas.IntegrationUpdate,
    queries: IntegrationQueries = Depends(get_integration_queries),
):
    return enhance_integration_data(queries.update(integration_id, payload))


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Disconnect and delete")
def delete_integration(integration_id: str, queries: IntegrationQueries = Depends(get_integration_queries)):
    queries.delete(integration_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{integration_id}/syncs",
    response_model=schemas.SyncLog,
    status_code=status.HTTP_201_CREATED,
    summary="Record a sync result",
    description="""
    Appends a sync log. On `success` the integration becomes connected and
    `last_sync` is stamped; on `error` its status becomes error.
    """,
)
def create_sync(
    integration_id: str,
    payload: schemas.SyncResultIn,
    client: HostedClient = Depends(get_client),
):
    return record_sync(client, integration_id, payload.status, payload.error_message)
