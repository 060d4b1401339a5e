"""
Application State Store
=======================

Client-side state for one dashboard session: the signed-in user, KPIs,
integrations, categories, a loading flag and the last error.

WHAT:
    `AppStore` exposes a fixed set of mutations. Views read attributes; they
    never assign to them. The store is passed by reference to whoever needs
    it (see kpidash/session.py). There is no global instance.

    Two groups of mutations:
    - Local edits (`add_kpi`, `update_kpi`, `delete_kpi`, `update_user`,
      `add_category`) mirror the dashboard's form actions.
    - Sync (`load_kpis`, `merge_kpi`, `remove_kpi`, `set_integrations`) apply
      rows fetched from, or pushed by, the backend.

    KPI `tags` and `history` live only here. They survive a merge of the
    persisted row but are never written back.

REFERENCES:
    - kpidash/session.py (owner)
    - kpidash/realtime.py (pushes change events that end up in merge/remove)
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from . import schemas
from .utils.kpi import get_unit_symbol

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("Revenue", "Marketing", "Sales", "Operations", "Customer")


@dataclass
class HistoryPoint:
    date: str
    value: float


@dataclass
class KPI:
    """A KPI as the dashboard shows it."""
    id: str
    name: str
    value: float
    target: float
    unit: str
    category: str
    unit_symbol: str = ""
    tags: List[str] = field(default_factory=list)
    trend: str = "neutral"
    change_percent: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    history: List[HistoryPoint] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: schemas.KpiData) -> "KPI":
        return cls(
            id=row.id,
            name=row.metric_name,
            value=row.value,
            target=row.target,
            unit=row.unit,
            category=row.category,
            unit_symbol=get_unit_symbol(row.unit),
            trend=row.trend,
            change_percent=row.change_percent,
            created_at=row.recorded_at,
            updated_at=row.recorded_at,
        )


@dataclass
class StoreUser:
    id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    avatar_url: Optional[str] = None


_KPI_FIELDS = {f.name for f in dataclass_fields(KPI)}
_EDITABLE_KPI_FIELDS = _KPI_FIELDS - {"id", "created_at", "updated_at"}
_USER_FIELDS = {f.name for f in dataclass_fields(StoreUser)}


def _utcnow() -> datetime:
    return datetime.utcnow()


class AppStore:
    """
    Observable-free state container.

    Realtime callbacks arrive on the thread that committed the change, so
    every mutation takes the store lock.
    """

    def __init__(self, user: Optional[StoreUser] = None, categories=DEFAULT_CATEGORIES):
        self.user = user or StoreUser()
        self.kpis: List[KPI] = []
        self.integrations: List[schemas.IntegrationWithLastSync] = []
        self.categories: List[str] = list(categories)
        self.is_loading = False
        self.error: Optional[str] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def add_kpi(self, data: Mapping[str, Any]) -> KPI:
        """Append a new KPI with a fresh id and timestamps."""
        values = {k: v for k, v in data.items() if k in _EDITABLE_KPI_FIELDS}
        now = _utcnow()
        kpi = KPI(id=str(uuid.uuid4()), created_at=now, updated_at=now, **values)
        if not kpi.unit_symbol:
            kpi.unit_symbol = get_unit_symbol(kpi.unit)
        with self._lock:
            self.kpis.append(kpi)
            self._remember_category(kpi.category)
        return kpi

    def update_kpi(self, kpi_id: str, **updates: Any) -> Optional[KPI]:
        """Merge `updates` into the KPI. Unknown ids are ignored; id and timestamps are not editable."""
        unknown = set(updates) - _EDITABLE_KPI_FIELDS
        if unknown:
            raise TypeError(f"Cannot update KPI fields: {', '.join(sorted(unknown))}")
        with self._lock:
            for index, kpi in enumerate(self.kpis):
                if kpi.id == kpi_id:
                    updated = replace(kpi, **{**updates, "updated_at": _utcnow()})
                    self.kpis[index] = updated
                    if updates.get("category"):
                        self._remember_category(updates["category"])
                    return updated
        return None

    def delete_kpi(self, kpi_id: str) -> None:
        with self._lock:
            self.kpis = [kpi for kpi in self.kpis if kpi.id != kpi_id]

    def update_user(self, **updates: Any) -> StoreUser:
        unknown = set(updates) - _USER_FIELDS
        if unknown:
            raise TypeError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        with self._lock:
            self.user = replace(self.user, **updates)
        return self.user

    def add_category(self, category: str) -> None:
        with self._lock:
            self._remember_category(category)

    def set_error(self, error: Optional[str]) -> None:
        self.error = error

    def set_loading(self, loading: bool) -> None:
        self.is_loading = loading

    # ------------------------------------------------------------------
    # Sync with the backend
    # ------------------------------------------------------------------

    def load_kpis(self, rows: List[schemas.KpiData]) -> None:
        """Replace the KPI list with persisted rows, keeping known tags and history."""
        with self._lock:
            existing = {kpi.id: kpi for kpi in self.kpis}
            self.kpis = [self._from_row(row, existing.get(row.id)) for row in rows]
            for kpi in self.kpis:
                self._remember_category(kpi.category)

    def merge_kpi(self, row: schemas.KpiData) -> KPI:
        """Insert or replace one persisted KPI."""
        with self._lock:
            for index, kpi in enumerate(self.kpis):
                if kpi.id == row.id:
                    merged = self._from_row(row, kpi)
                    self.kpis[index] = merged
                    break
            else:
                merged = self._from_row(row, None)
                self.kpis.insert(0, merged)
            self._remember_category(merged.category)
        return merged

    def remove_kpi(self, kpi_id: str) -> None:
        self.delete_kpi(kpi_id)

    def set_integrations(self, integrations: List[schemas.IntegrationWithLastSync]) -> None:
        with self._lock:
            self.integrations = list(integrations)

    def get_kpi(self, kpi_id: str) -> Optional[KPI]:
        return next((kpi for kpi in self.kpis if kpi.id == kpi_id), None)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "user": self.user,
                "kpis": list(self.kpis),
                "integrations": list(self.integrations),
                "categories": list(self.categories),
                "is_loading": self.is_loading,
                "error": self.error,
            }

    # ------------------------------------------------------------------

    def _remember_category(self, category: Optional[str]) -> None:
        if category and category not in self.categories:
            self.categories.append(category)
            logger.debug("[STORE] Added category %s", category)

    @staticmethod
    def _from_row(row: schemas.KpiData, current: Optional[KPI]) -> KPI:
        kpi = KPI.from_row(row)
        if current is not None:
            kpi.tags = list(current.tags)
            kpi.history = list(current.history)
            kpi.created_at = current.created_at or kpi.created_at
        return kpi
