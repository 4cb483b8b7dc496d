"""Pydantic models for gateway interactions and domain objects."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Session / Task Models ---


class Session(BaseModel):
    """Logged-in session handed over by the login collaborator."""

    model_config = ConfigDict(frozen=True)

    cookie_header: str
    nickname: str = ""


class SigningToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    extracted_at: datetime


class PurchaseTask(BaseModel):
    """Everything one snatch run needs. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    ticket_id: str
    perform_id: str
    sku_id: str
    quantity: int = Field(default=1, ge=1, le=4)
    sale_time: int  # epoch ms
    priority_window_minutes: int = Field(default=0, ge=0, le=60)
    clock_offset_ms: int = Field(default=0, ge=-100, le=1000)
    think_time_ms: int = Field(default=30, ge=10)
    retry_count: int = Field(default=5, ge=1, le=10)
    retry_interval_ms: int = Field(default=100, ge=10, le=1000)
    real_names: list[str] = []

    # Display only
    ticket_name: str = ""
    perform_name: str = ""
    sku_name: str = ""


# --- Gateway Models ---


class Endpoint(BaseModel):
    """Gateway API name + version, e.g. mtop.trade.order.build.h5 / 4.0."""

    model_config = ConfigDict(frozen=True)

    api: str
    version: str


class SignedRequest(BaseModel):
    url: str
    params: dict[str, str]


class GatewayEnvelope(BaseModel):
    outcome_codes: list[str] = []
    payload: Any = None


class OrderToken(BaseModel):
    """Single-use handle from order creation, consumed by submission."""

    model_config = ConfigDict(frozen=True)

    value: str


# --- Catalog Models ---


class Ticket(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    ticket_id: str = Field(alias="id")
    ticket_name: str = Field(alias="name")
    sale_time: int = Field(default=0, alias="saleTime")
    category_name: str = Field(default="", alias="categoryName")


class PerformItem(BaseModel):
    perform_id: str
    perform_name: str


class SkuItem(BaseModel):
    sku_id: str
    sku_name: str


# --- Snatch Outcome ---


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureReason(str, Enum):
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    FATAL = "fatal"
    SESSION_INVALID = "session_invalid"


class SnatchOutcome(BaseModel):
    status: OutcomeStatus
    order_ref: str | None = None
    reason: FailureReason | None = None
    detail: str | None = None
    attempts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS
