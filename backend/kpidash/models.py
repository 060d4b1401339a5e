"""SQLAlchemy ORM models and enums.

This module defines the persisted schema behind the hosted backend surface:
`profiles`, `integrations`, `kpi_data` and `sync_logs`, plus the auth identity
tables. Authentication secrets are stored in a separate `auth_credentials`
table to keep the domain `users` table clean.

Every domain table carries a `user_id` column. Row-level scoping is applied by
the data-access layer (see kpidash/queries.py), never by the models.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import Column, String, DateTime, Enum, Float, ForeignKey, Text
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls, **kwargs):
    return Column(Enum(enum_cls, values_callable=lambda obj: [e.value for e in obj]), **kwargs)


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    shopify = "shopify"
    etsy = "etsy"
    woocommerce = "woocommerce"
    squarespace = "squarespace"


class IntegrationStatusEnum(str, enum.Enum):
    connected = "connected"
    disconnected = "disconnected"
    error = "error"


class SyncFrequencyEnum(str, enum.Enum):
    realtime = "realtime"
    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"


class KpiUnitEnum(str, enum.Enum):
    currency = "currency"
    percentage = "percentage"
    count = "count"
    ratio = "ratio"


class TrendEnum(str, enum.Enum):
    up = "up"
    down = "down"
    neutral = "neutral"


class SyncStatusEnum(str, enum.Enum):
    success = "success"
    error = "error"
    in_progress = "in_progress"


# Auth identity ---------------------------------------------------

class User(Base):
    """Authenticated identity.

    The user-facing details (names, avatar) live on `Profile`; this table only
    anchors the id every other row is scoped by.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # 1:1 credential for local password-based auth
    credential = relationship("AuthCredential", back_populates="user", uselist=False, cascade="all, delete-orphan")
    profile = relationship("Profile", back_populates="user", uselist=False)

    def __str__(self):
        return self.email


class AuthCredential(Base):
    """Password hash for a user (bcrypt via passlib)."""
    __tablename__ = "auth_credentials"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="credential")


# Domain tables ---------------------------------------------------

class Profile(Base):
    """One profile per user, created on sign-up and never deleted by the app."""
    __tablename__ = "profiles"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="profile")

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.email})"


class Integration(Base):
    """Connection to an e-commerce platform store.

    Created on connect, status/last_sync mutated by sync events, deleted on
    disconnect. `api_key` holds Fernet ciphertext (see kpidash/security.py).
    """
    __tablename__ = "integrations"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    platform = _enum_column(PlatformEnum, nullable=False)
    status = _enum_column(IntegrationStatusEnum, nullable=False, default=IntegrationStatusEnum.connected)
    api_key = Column(Text, nullable=True)
    store_name = Column(String, nullable=False)
    sync_frequency = _enum_column(SyncFrequencyEnum, nullable=False, default=SyncFrequencyEnum.daily)
    last_sync = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    sync_logs = relationship("SyncLog", back_populates="integration", cascade="all, delete-orphan")

    def __str__(self):
        return f"{self.store_name} ({self.platform.value})"


class KpiData(Base):
    """A tracked metric with its current value and target."""
    __tablename__ = "kpi_data"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    metric_name = Column(String, nullable=False)
    value = Column(Float, nullable=False)
    target = Column(Float, nullable=False)
    unit = _enum_column(KpiUnitEnum, nullable=False)
    category = Column(String, nullable=False, index=True)
    change_percent = Column(Float, nullable=False, default=0.0)
    trend = _enum_column(TrendEnum, nullable=False, default=TrendEnum.neutral)
    recorded_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __str__(self):
        return f"{self.metric_name} ({self.category})"


class SyncLog(Base):
    """Audit record of one sync attempt. Append-only; removed with its integration."""
    __tablename__ = "sync_logs"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    integration_id = Column(String(36), ForeignKey("integrations.id"), nullable=False)
    status = _enum_column(SyncStatusEnum, nullable=False)
    error_message = Column(Text, nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow, index=True)

    integration = relationship("Integration", back_populates="sync_logs")
