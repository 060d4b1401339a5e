"""
KPI router
----------
Purpose:
- CRUD for the caller's KPI records, plus the metrics summary.
- Create runs the KPI form validator, so the API rejects exactly what the
  dashboard form rejects (422 with field errors).
- Reads return rows enriched with progress, on-track flag and formatted value.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from .. import schemas
from ..deps import get_kpi_queries
from ..exceptions import BackendError
from ..queries import KpiQueries
from ..utils.kpi import enhance_kpi_data
from ..validation import require_valid, validate_kpi_form

router = APIRouter(
    prefix="/kpis",
    tags=["KPIs"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
    },
)


@router.get("", response_model=List[schemas.KpiDataWithProgress], summary="List KPIs, newest first")
def list_kpis(
    limit: Optional[int] = Query(None, ge=1, le=500),
    category: Optional[str] = Query(None, description="Only KPIs in this category"),
    period: Optional[str] = Query(None, pattern="^(week|month|quarter|year)$", description="Trailing period"),
    queries: KpiQueries = Depends(get_kpi_queries),
):
    if period:
        rows = queries.list_in_period(period)
        if category:
            rows = [row for row in rows if row.category == category]
        rows = rows[:limit] if limit else rows
    elif category:
        rows = queries.list(limit=limit, category=category)
    else:
        rows = queries.list(limit=limit)
    return [enhance_kpi_data(row) for row in rows]


@router.get("/metrics", response_model=schemas.KpiMetrics, summary="KPI summary metrics")
def get_metrics(queries: KpiQueries = Depends(get_kpi_queries)):
    return queries.get_metrics()


@router.get("/{kpi_id}", response_model=schemas.KpiDataWithProgress, summary="Get one KPI")
def get_kpi(kpi_id: str, queries: KpiQueries = Depends(get_kpi_queries)):
    row = queries.get_by_id(kpi_id)
    if row is None:
        raise BackendError("KPI not found", code="not_found", status=404)
    return enhance_kpi_data(row)


@router.post(
    "",
    response_model=schemas.KpiDataWithProgress,
    status_code=status.HTTP_201_CREATED,
    summary="Create a KPI",
    description="""
    Accepts the KPI form: `name` (or `metric_name`), `value`, `target`,
    `unit`, `category` and optionally `change_percent` and `trend`.
    Numeric fields may be strings as submitted by the form.
    """,
)
def create_kpi(form: Dict[str, Any] = Body(...), queries: KpiQueries = Depends(get_kpi_queries)):
    fields = require_valid(validate_kpi_form(form))
    return enhance_kpi_data(queries.create(fields))


@router.put("/{kpi_id}", response_model=schemas.KpiDataWithProgress, summary="Update a KPI")
def update_kpi(kpi_id: str, payload: schemas.KpiDataUpdate, queries: KpiQueries = Depends(get_kpi_queries)):
    return enhance_kpi_data(queries.update(kpi_id, payload))


@router.delete("/{kpi_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a KPI")
def delete_kpi(kpi_id: str, queries: KpiQueries = Depends(get_kpi_queries)):
    queries.delete(kpi_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
