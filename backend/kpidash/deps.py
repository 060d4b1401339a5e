"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from .database import get_db
from .hosted.channels import ChangeFeed
from .hosted.client import HostedClient
from .queries import (
    DashboardQueries,
    IntegrationQueries,
    KpiQueries,
    ProfileQueries,
    SyncLogQueries,
)


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    # Cookie domain must NOT include protocol (https://)
    # Set to None for same-origin cookies
    COOKIE_DOMAIN: Optional[str] = None
    ENVIRONMENT: str = "development"
    PASSWORD_RESET_REDIRECT_URL: str = "http://localhost:3000/reset-password"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_change_feed(conn: HTTPConnection) -> ChangeFeed:
    """The process-wide change feed created in kpidash/main.py."""
    return conn.app.state.change_feed


def _bearer(value: Optional[str]) -> Optional[str]:
    if value and value.startswith("Bearer "):
        return value[len("Bearer "):]
    return value


def get_client(
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    authorization: Optional[str] = Header(default=None),
) -> HostedClient:
    """Hosted client for this request, authenticated by cookie or Authorization header.

    The token is not checked here: the data layer resolves the user on every
    call and raises UnauthenticatedError when it cannot.
    """
    token = _bearer(access_token) or _bearer(authorization)
    return HostedClient(db, feed, access_token=token)


def get_profile_queries(client: HostedClient = Depends(get_client)) -> ProfileQueries:
    return ProfileQueries(client)


def get_integration_queries(client: HostedClient = Depends(get_client)) -> IntegrationQueries:
    return IntegrationQueries(client)


def get_kpi_queries(client: HostedClient = Depends(get_client)) -> KpiQueries:
    return KpiQueries(client)


def get_sync_log_queries(client: HostedClient = Depends(get_client)) -> SyncLogQueries:
    return SyncLogQueries(client)


def get_dashboard_queries(client: HostedClient = Depends(get_client)) -> DashboardQueries:
    return DashboardQueries(client)
