"""
Data-Access Layer
=================

Per-entity query objects over the hosted backend.

CONTRACT
--------
Every operation:
1. Resolves the current user via `client.auth.get_user()`. With no user it
   raises UnauthenticatedError before touching any table.
2. Scopes every filter by `user_id = <resolved id>`.
3. On create/update, overwrites `user_id` with the resolved id, so a caller
   can never write rows into another user's scope.
4. Lets BackendError propagate unchanged. Nothing retries.

USAGE:
    kpis = KpiQueries(client)
    rows = kpis.list(limit=10)
    kpi = kpis.create(KpiDataInsert(metric_name="Revenue", ...))

REFERENCES:
    - kpidash/hosted/client.py (HostedClient)
    - kpidash/routers/*.py (HTTP consumers)
    - kpidash/session.py (client-side consumer)
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from . import schemas
from .exceptions import BackendError, ImmutableRecordError, UnauthenticatedError
from .hosted.client import HostedClient
from .security import decrypt_secret, encrypt_secret
from .telemetry import set_user_context
from .utils.dates import as_utc, get_date_range
from .utils.integrations import enhance_integration_data
from .utils.kpi import calculate_trend, enhance_kpi_data, is_on_track

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT", bound=BaseModel)

Fields = Union[BaseModel, Mapping[str, Any]]


def _as_fields(fields: Fields, *, partial: bool) -> Dict[str, Any]:
    if isinstance(fields, BaseModel):
        return fields.model_dump(exclude_unset=partial, exclude_none=not partial, mode="python")
    return dict(fields)


def _not_found(table: str, record_id: str) -> BackendError:
    return BackendError(f"No {table} row with id {record_id}", code="not_found", status=404)


class ScopedQueries(Generic[RowT]):
    """
    CRUD for one user-scoped table.

    Subclasses set `table`, `row_model`, the key column and which mutations
    the entity's lifecycle allows.
    """

    table: str
    row_model: Type[RowT]
    key_column: str = "id"
    order_column: Optional[str] = None
    allow_update: bool = True
    allow_delete: bool = True

    def __init__(self, client: HostedClient):
        self.client = client

    def _current_user_id(self) -> str:
        user = self.client.auth.get_user()
        if user is None:
            raise UnauthenticatedError()
        set_user_context(user_id=str(user.id), email=user.email)
        return str(user.id)

    def _rows(self, rows: List[Dict[str, Any]]) -> List[RowT]:
        return [self.row_model.model_validate(row) for row in rows]

    def _prepare_write(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Hook for entity-specific transformation before insert/update."""
        return values

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def list(self, limit: Optional[int] = None, **filters: Any) -> List[RowT]:
        user_id = self._current_user_id()
        rows = self.client.table(self.table).select(
            {**filters, "user_id": user_id},
            order_by=self.order_column,
            descending=True,
            limit=limit,
        )
        return self._rows(rows)

    def get_by_id(self, record_id: str) -> Optional[RowT]:
        user_id = self._current_user_id()
        row = self.client.table(self.table).select_one({self.key_column: record_id, "user_id": user_id})
        return self.row_model.model_validate(row) if row else None

    def create(self, fields: Fields) -> RowT:
        user_id = self._current_user_id()
        values = self._prepare_write(_as_fields(fields, partial=False))
        values["user_id"] = user_id
        row = self.client.table(self.table).insert(values)
        logger.info("[QUERIES] Created %s row for user %s", self.table, user_id)
        return self.row_model.model_validate(row)

    def update(self, record_id: str, fields: Fields) -> RowT:
        user_id = self._current_user_id()
        if not self.allow_update:
            raise ImmutableRecordError(self.table, "update")
        values = self._prepare_write(_as_fields(fields, partial=True))
        values["user_id"] = user_id
        rows = self.client.table(self.table).update({self.key_column: record_id, "user_id": user_id}, values)
        if not rows:
            raise _not_found(self.table, record_id)
        return self.row_model.model_validate(rows[0])

    def delete(self, record_id: str) -> None:
        user_id = self._current_user_id()
        if not self.allow_delete:
            raise ImmutableRecordError(self.table, "delete")
        removed = self.client.table(self.table).delete({self.key_column: record_id, "user_id": user_id})
        if not removed:
            raise _not_found(self.table, record_id)
        logger.info("[QUERIES] Deleted %s row %s", self.table, record_id)


# =============================================================================
# Profiles
# =============================================================================

class ProfileQueries(ScopedQueries[schemas.Profile]):
    """One profile per user, keyed by user_id. Profiles are never deleted."""

    table = "profiles"
    row_model = schemas.Profile
    key_column = "user_id"
    allow_delete = False

    def get_profile(self) -> Optional[schemas.Profile]:
        user_id = self._current_user_id()
        row = self.client.table(self.table).select_one({"user_id": user_id})
        return self.row_model.model_validate(row) if row else None

    def create_profile(self, fields: Fields) -> schemas.Profile:
        return self.create(fields)

    def update_profile(self, fields: Fields) -> schemas.Profile:
        user_id = self._current_user_id()
        values = _as_fields(fields, partial=True)
        values["user_id"] = user_id
        rows = self.client.table(self.table).update({"user_id": user_id}, values)
        if not rows:
            raise _not_found(self.table, user_id)
        return self.row_model.model_validate(rows[0])


# =============================================================================
# Integrations
# =============================================================================

class IntegrationQueries(ScopedQueries[schemas.Integration]):
    table = "integrations"
    row_model = schemas.Integration
    order_column = "created_at"

    def _prepare_write(self, values: Dict[str, Any]) -> Dict[str, Any]:
        api_key = values.get("api_key")
        if api_key:
            values["api_key"] = encrypt_secret(api_key, context=f"{values.get('platform', 'integration')}")
        return values

    def reveal_api_key(self, integration_id: str) -> Optional[str]:
        """Plaintext API key for a sync worker. None when no key is stored."""
        integration = self.get_by_id(integration_id)
        if integration is None:
            raise _not_found(self.table, integration_id)
        if not integration.api_key:
            return None
        return decrypt_secret(integration.api_key, context=integration.store_name)


# =============================================================================
# KPI data
# =============================================================================

class KpiQueries(ScopedQueries[schemas.KpiData]):
    table = "kpi_data"
    row_model = schemas.KpiData
    order_column = "recorded_at"

    def _prepare_write(self, values: Dict[str, Any]) -> Dict[str, Any]:
        # Trend follows change_percent unless the caller set it explicitly.
        if values.get("change_percent") is not None and values.get("trend") is None:
            values["trend"] = calculate_trend(values["change_percent"])
        elif "trend" in values and values["trend"] is None:
            values.pop("trend")
        if "recorded_at" in values and values["recorded_at"] is None:
            values.pop("recorded_at")
        return values

    def list_by_category(self, category: str) -> List[schemas.KpiData]:
        return self.list(category=category)

    def list_in_period(self, period: str, now: Optional[datetime] = None) -> List[schemas.KpiData]:
        """KPIs recorded within the trailing week, month, quarter or year."""
        start = as_utc(get_date_range(period, now)["start"])
        return [kpi for kpi in self.list() if as_utc(kpi.recorded_at) >= start]

    def get_metrics(self) -> schemas.KpiMetrics:
        kpis = self.list()
        total = len(kpis)
        if total == 0:
            return schemas.KpiMetrics()

        on_track = sum(1 for kpi in kpis if is_on_track(kpi.value, kpi.target))
        ratios = [kpi.value / kpi.target if kpi.target else 0.0 for kpi in kpis]
        average = sum(ratios) / total * 100
        return schemas.KpiMetrics(
            total_kpis=total,
            on_track_kpis=on_track,
            average_progress=math.floor(average + 0.5),
            trends_up=sum(1 for kpi in kpis if kpi.trend == "up"),
            trends_down=sum(1 for kpi in kpis if kpi.trend == "down"),
        )


# =============================================================================
# Sync logs
# =============================================================================

class SyncLogQueries(ScopedQueries[schemas.SyncLog]):
    """Append-only audit trail of sync attempts."""

    table = "sync_logs"
    row_model = schemas.SyncLog
    order_column = "synced_at"
    allow_update = False
    allow_delete = False

    def _prepare_write(self, values: Dict[str, Any]) -> Dict[str, Any]:
        if "synced_at" in values and values["synced_at"] is None:
            values.pop("synced_at")
        return values

    def list_with_integrations(self, limit: int = 50) -> List[schemas.SyncLogWithIntegration]:
        """Newest sync logs, each with its integration's platform and store name."""
        logs = self.list(limit=limit)
        integrations = {
            row.id: row for row in IntegrationQueries(self.client).list()
        }
        result = []
        for log in logs:
            integration = integrations.get(log.integration_id)
            ref = None
            if integration is not None:
                ref = schemas.SyncLogIntegrationRef(platform=integration.platform, store_name=integration.store_name)
            result.append(schemas.SyncLogWithIntegration(**log.model_dump(), integration=ref))
        return result


# =============================================================================
# Dashboard
# =============================================================================

class DashboardQueries:
    """Everything the dashboard page needs in one call."""

    RECENT_LIMIT = 10

    def __init__(self, client: HostedClient):
        self.kpis = KpiQueries(client)
        self.integrations = IntegrationQueries(client)
        self.sync_logs = SyncLogQueries(client)

    def get_dashboard_data(self, now: Optional[datetime] = None) -> schemas.DashboardData:
        metrics = self.kpis.get_metrics()
        recent = self.kpis.list(limit=self.RECENT_LIMIT)
        integrations = self.integrations.list()
        logs = self.sync_logs.list_with_integrations(limit=self.RECENT_LIMIT)

        return schemas.DashboardData(
            metrics=metrics,
            recent_kpis=[enhance_kpi_data(kpi) for kpi in recent],
            integrations=[enhance_integration_data(row, now) for row in integrations],
            sync_logs=logs,
        )
