"""Pydantic schemas for persisted rows, insert/update payloads and API responses.

Each table has three shapes, mirroring the hosted backend's generated types:
- Row: exactly what the backend returns
- Insert: what a create call accepts (server-managed fields optional)
- Update: every field optional, for partial updates
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr

from .models import (
    IntegrationStatusEnum,
    KpiUnitEnum,
    PlatformEnum,
    SyncFrequencyEnum,
    SyncStatusEnum,
    TrendEnum,
)


class _RowModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class _PayloadModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True, extra="forbid")


# =============================================================================
# Profiles
# =============================================================================

class Profile(_RowModel):
    user_id: str
    first_name: str
    last_name: str
    email: EmailStr
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProfileInsert(_PayloadModel):
    user_id: Optional[str] = None
    first_name: str
    last_name: str
    email: EmailStr
    avatar_url: Optional[str] = None


class ProfileUpdate(_PayloadModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = None


# =============================================================================
# Integrations
# =============================================================================

class Integration(_RowModel):
    id: str
    user_id: str
    platform: PlatformEnum
    status: IntegrationStatusEnum
    api_key: Optional[str] = None
    store_name: str
    sync_frequency: SyncFrequencyEnum
    last_sync: Optional[datetime] = None
    created_at: datetime


class IntegrationInsert(_PayloadModel):
    user_id: Optional[str] = None
    platform: PlatformEnum
    status: IntegrationStatusEnum = IntegrationStatusEnum.connected
    api_key: Optional[str] = None
    store_name: constr(min_length=1)
    sync_frequency: SyncFrequencyEnum = SyncFrequencyEnum.daily
    last_sync: Optional[datetime] = None


class IntegrationUpdate(_PayloadModel):
    platform: Optional[PlatformEnum] = None
    status: Optional[IntegrationStatusEnum] = None
    api_key: Optional[str] = None
    store_name: Optional[constr(min_length=1)] = None
    sync_frequency: Optional[SyncFrequencyEnum] = None
    last_sync: Optional[datetime] = None


class IntegrationWithLastSync(BaseModel):
    """Integration as shown in the UI. The secret itself never leaves the server."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    user_id: str
    platform: PlatformEnum
    platform_name: str
    status: IntegrationStatusEnum
    has_api_key: bool
    store_name: str
    sync_frequency: SyncFrequencyEnum
    last_sync: Optional[datetime] = None
    created_at: datetime
    last_sync_formatted: str
    is_healthy: bool


# =============================================================================
# KPI data
# =============================================================================

class KpiData(_RowModel):
    id: str
    user_id: str
    metric_name: str
    value: float
    target: float
    unit: KpiUnitEnum
    category: str
    change_percent: float
    trend: TrendEnum
    recorded_at: datetime


class KpiDataInsert(_PayloadModel):
    user_id: Optional[str] = None
    metric_name: constr(strip_whitespace=True, min_length=1)
    value: float
    target: float
    unit: KpiUnitEnum
    category: constr(strip_whitespace=True, min_length=1)
    change_percent: float = 0.0
    trend: Optional[TrendEnum] = None
    recorded_at: Optional[datetime] = None


class KpiDataUpdate(_PayloadModel):
    metric_name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    value: Optional[float] = None
    target: Optional[float] = None
    unit: Optional[KpiUnitEnum] = None
    category: Optional[constr(strip_whitespace=True, min_length=1)] = None
    change_percent: Optional[float] = None
    trend: Optional[TrendEnum] = None
    recorded_at: Optional[datetime] = None


class KpiDataWithProgress(KpiData):
    progress: int
    is_on_track: bool
    unit_symbol: str
    formatted_value: str


class KpiMetrics(BaseModel):
    total_kpis: int = 0
    on_track_kpis: int = 0
    average_progress: int = 0
    trends_up: int = 0
    trends_down: int = 0


# =============================================================================
# Sync logs
# =============================================================================

class SyncLog(_RowModel):
    id: str
    user_id: str
    integration_id: str
    status: SyncStatusEnum
    error_message: Optional[str] = None
    synced_at: datetime


class SyncLogInsert(_PayloadModel):
    user_id: Optional[str] = None
    integration_id: str
    status: SyncStatusEnum
    error_message: Optional[str] = None
    synced_at: Optional[datetime] = None


class SyncLogIntegrationRef(BaseModel):
    platform: str
    store_name: str


class SyncLogWithIntegration(SyncLog):
    integration: Optional[SyncLogIntegrationRef] = None


class SyncResultIn(_PayloadModel):
    """Outcome of one sync attempt, reported by whatever ran the sync."""

    status: SyncStatusEnum
    error_message: Optional[str] = None


# =============================================================================
# Dashboard
# =============================================================================

class DashboardData(BaseModel):
    metrics: KpiMetrics
    recent_kpis: List[KpiDataWithProgress]
    integrations: List[IntegrationWithLastSync]
    sync_logs: List[SyncLogWithIntegration]


# =============================================================================
# Realtime
# =============================================================================

class RealtimeMessage(BaseModel):
    """Envelope pushed over the /realtime websocket."""

    type: Literal["connected", "change"]
    table: Optional[str] = None
    event_type: Optional[Literal["INSERT", "UPDATE", "DELETE"]] = None
    new: Dict[str, Any] = Field(default_factory=dict)
    old: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


# =============================================================================
# Auth
# =============================================================================

class SignUpIn(BaseModel):
    email: EmailStr = Field(description="User email address", examples=["owner@shop.com"])
    password: constr(min_length=8) = Field(description="Password (minimum 8 characters)")
    first_name: constr(strip_whitespace=True, min_length=1)
    last_name: constr(strip_whitespace=True, min_length=1)


class SignInIn(BaseModel):
    email: EmailStr
    password: str


class PasswordResetIn(BaseModel):
    email: EmailStr


class PasswordUpdateIn(BaseModel):
    password: constr(min_length=8)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    created_at: Optional[datetime] = None


class SessionOut(BaseModel):
    user: UserOut
    expires_in: int


# =============================================================================
# Common
# =============================================================================

class FieldErrorOut(BaseModel):
    field: str
    code: str
    message: str


class ErrorResponse(BaseModel):
    detail: str
    errors: Optional[List[FieldErrorOut]] = None


class SuccessResponse(BaseModel):
    detail: str


class HealthResponse(BaseModel):
    status: str
