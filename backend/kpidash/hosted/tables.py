"""Table-level CRUD for the hosted backend.

WHAT:
    `TableClient` runs select/insert/update/delete against one table using
    column-equality filters and returns plain dict rows.

WHY:
    Callers (kpidash/queries.py) treat the backend as opaque: they never see
    ORM objects or SQLAlchemy exceptions. Every database failure is re-raised
    as BackendError with the driver's message intact, and every successful
    write is announced on the change feed after commit.
"""

import enum
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import BackendError
from ..models import Integration, KpiData, Profile, SyncLog
from .channels import ChangeFeed

logger = logging.getLogger(__name__)


TABLES = {
    "profiles": Profile,
    "integrations": Integration,
    "kpi_data": KpiData,
    "sync_logs": SyncLog,
}


def row_to_dict(obj) -> Dict[str, Any]:
    """Serialize an ORM row to its column values (enums as their values)."""
    row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, enum.Enum):
            value = value.value
        row[column.key] = value
    return row


class TableClient:
    """CRUD over a single hosted table."""

    def __init__(self, session: Session, table: str, feed: Optional[ChangeFeed] = None):
        if table not in TABLES:
            raise BackendError(f'relation "{table}" does not exist', code="42P01")
        self.session = session
        self.table = table
        self.model = TABLES[table]
        self.feed = feed
        self._columns = {column.key: column for column in self.model.__table__.columns}

    def _column(self, name: str):
        if name not in self._columns:
            raise BackendError(f'column {self.table}.{name} does not exist', code="42703")
        return getattr(self.model, name)

    def _query(self, filters: Mapping[str, Any]):
        query = self.session.query(self.model)
        for name, value in filters.items():
            query = query.filter(self._column(name) == value)
        return query

    def _check_values(self, values: Mapping[str, Any]) -> None:
        for name in values:
            self._column(name)

    def _fail(self, exc: SQLAlchemyError, operation: str) -> BackendError:
        self.session.rollback()
        orig = getattr(exc, "orig", None)
        message = str(orig) if orig is not None else str(exc)
        logger.warning("[TABLES] %s on %s failed: %s", operation, self.table, message)
        return BackendError(message, code=type(exc).__name__)

    def _publish(
        self,
        event_type: str,
        new: Optional[Dict] = None,
        old: Optional[Dict] = None,
        table: Optional[str] = None,
    ) -> None:
        if self.feed is not None:
            self.feed.publish(table or self.table, event_type, new=new, old=old)

    def _cascaded(self, obj) -> List[Tuple[str, Dict[str, Any]]]:
        """Child rows the ORM removes together with `obj`, as (table, row)."""
        children = []
        for rel in sa_inspect(type(obj)).relationships:
            if not rel.cascade.delete:
                continue
            related = getattr(obj, rel.key)
            if related is None:
                continue
            items = related if rel.uselist else [related]
            children.extend((rel.mapper.local_table.name, row_to_dict(child)) for child in items)
        return children

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            query = self._query(filters or {})
            if order_by:
                column = self._column(order_by)
                query = query.order_by(column.desc() if descending else column.asc())
            if limit:
                query = query.limit(limit)
            return [row_to_dict(obj) for obj in query.all()]
        except SQLAlchemyError as exc:
            raise self._fail(exc, "select") from exc

    def select_one(self, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the single matching row, or None. More than one match is an error."""
        rows = self.select(filters, limit=2)
        if len(rows) > 1:
            raise BackendError("JSON object requested, multiple (or no) rows returned", code="PGRST116")
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        self._check_values(values)
        obj = self.model(**dict(values))
        try:
            self.session.add(obj)
            self.session.commit()
            self.session.refresh(obj)
        except SQLAlchemyError as exc:
            raise self._fail(exc, "insert") from exc

        row = row_to_dict(obj)
        self._publish("INSERT", new=row)
        return row

    def update(self, filters: Mapping[str, Any], values: Mapping[str, Any]) -> List[Dict[str, Any]]:
        self._check_values(values)
        changes = []
        try:
            targets = self._query(filters).all()
            for obj in targets:
                before = row_to_dict(obj)
                for name, value in values.items():
                    setattr(obj, name, value)
                changes.append((obj, before))
            self.session.commit()
            for obj, _ in changes:
                self.session.refresh(obj)
        except SQLAlchemyError as exc:
            raise self._fail(exc, "update") from exc

        rows = []
        for obj, before in changes:
            row = row_to_dict(obj)
            rows.append(row)
            self._publish("UPDATE", new=row, old=before)
        return rows

    def delete(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        # ORM-level deletes so relationship cascades (integration -> sync logs) apply
        try:
            targets = self._query(filters).all()
            removed = [row_to_dict(obj) for obj in targets]
            cascaded = [child for obj in targets for child in self._cascaded(obj)]
            for obj in targets:
                self.session.delete(obj)
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, "delete") from exc

        for table, row in cascaded:
            self._publish("DELETE", old=row, table=table)
        for row in removed:
            self._publish("DELETE", old=row)
        return removed
