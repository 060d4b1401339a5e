"""Integration sync recording.

WHAT:
    Appends a sync log for one of the caller's integrations and moves the
    integration to the state the result implies:
    - success: status connected, last_sync stamped with the log's time
    - error: status error, last_sync untouched
    - in_progress: integration unchanged

WHY:
    Platform sync workers (and the manual "sync now" endpoint) report
    outcomes through one function, so the audit trail and the integration's
    health indicator can never disagree.

REFERENCES:
    - kpidash/queries.py (IntegrationQueries, SyncLogQueries)
    - kpidash/routers/integrations.py (POST /integrations/{id}/syncs)
    - kpidash/utils/integrations.py (is_healthy reads last_sync)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..exceptions import BackendError
from ..hosted.client import HostedClient
from ..models import IntegrationStatusEnum, SyncStatusEnum
from ..queries import IntegrationQueries, SyncLogQueries
from ..schemas import IntegrationUpdate, SyncLog, SyncLogInsert


logger = logging.getLogger(__name__)


def record_sync(
    client: HostedClient,
    integration_id: str,
    status: str,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SyncLog:
    """Record a sync attempt. Raises BackendError (404) for an unknown integration."""
    status = SyncStatusEnum(status).value
    integrations = IntegrationQueries(client)

    integration = integrations.get_by_id(integration_id)
    if integration is None:
        raise BackendError(f"No integrations row with id {integration_id}", code="not_found", status=404)

    log = SyncLogQueries(client).create(SyncLogInsert(
        integration_id=integration_id,
        status=status,
        error_message=error_message if status == SyncStatusEnum.error.value else None,
        synced_at=now,
    ))

    if status == SyncStatusEnum.success.value:
        integrations.update(integration_id, IntegrationUpdate(
            status=IntegrationStatusEnum.connected,
            last_sync=log.synced_at,
        ))
    elif status == SyncStatusEnum.error.value:
        integrations.update(integration_id, IntegrationUpdate(status=IntegrationStatusEnum.error))
        logger.warning("[SYNC] %s sync failed for %s: %s", integration.platform, integration_id, error_message)

    logger.info("[SYNC] Recorded %s sync for integration %s", status, integration_id)
    return log
