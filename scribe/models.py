from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LocationRecord(CamelModel):
    country: str = Field(..., description="Country display name")
    country_code: str = Field(..., alias="countryCode", description="Lower-case ISO alpha-2 code")
    city: Optional[str] = None
    region: Optional[str] = None
    timezone: Optional[str] = None
    currency: str = Field("usd", description="Lower-case ISO 4217 code")
    symbol: str = "$"
    exchange_rate: float = Field(1.0, alias="exchangeRate", description="Units per USD")
    flag: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    is_african: bool = Field(False, alias="isAfrican")
    recommended_gateway: str = Field("stripe", alias="recommendedGateway")
    recommended_currency: Optional[str] = Field(None, alias="recommendedCurrency")
    detection_method: str = Field("api", alias="detectionMethod")
    ip: Optional[str] = None
    timestamp: Optional[int] = Field(None, description="Cache write time, epoch milliseconds")


class ChatMessage(CamelModel):
    role: str = Field(..., description="'user' or 'assistant'")
    content: str = ""
    timestamp: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ConversationSnapshot(CamelModel):
    id: Optional[str] = None
    title: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentRecord(CamelModel):
    status: Optional[str] = None
    payment_date: Optional[str] = Field(None, alias="paymentDate")
    is_paid: Optional[bool] = Field(None, alias="isPaid")
