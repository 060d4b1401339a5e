"""Dashboard endpoint: metrics, recent KPIs, integrations and sync logs in one call."""

from fastapi import APIRouter, Depends

from .. import schemas
from ..deps import get_dashboard_queries
from ..queries import DashboardQueries

router = APIRouter(
    prefix="/dashboard",
    tags=["Dashboard"],
    responses={401: {"model": schemas.ErrorResponse, "description": "Unauthorized"}},
)


@router.get(
    "",
    response_model=schemas.DashboardData,
    summary="Dashboard data",
    description="""
    Everything the dashboard page renders, so the UI makes a single request:
    - KPI metrics (totals, on-track count, average progress, trend counts)
    - The 10 most recent KPIs with progress
    - Integrations with health and last-sync text
    - The 10 most recent sync logs with their integration
    """,
)
def get_dashboard(queries: DashboardQueries = Depends(get_dashboard_queries)):
    return queries.get_dashboard_data()
