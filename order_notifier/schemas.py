"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming orders and lookups
- Response models for API responses
- The signed session event sent by the messaging gateway

Request models accept the field names used by the storefront client
("cliente", "carrinho", "pagamento", "troco", ...) as well as English names.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from order_notifier.utils import parse_amount


# =============================================================================
# Pydantic Request Models
# =============================================================================

class CartItem(BaseModel):
    """A single cart line embedded in the order payload."""
    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "nome"),
        description="Product name"
    )
    price: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("price", "preco"),
        description="Unit price"
    )
    quantity: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices("quantity", "quantidade"),
        description="Number of units"
    )
    observation: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("observation", "observacao"),
        description="Free-text note for the kitchen"
    )

    model_config = {"populate_by_name": True}


class CustomerInput(BaseModel):
    """Customer data as typed in the storefront checkout form."""
    phone: str = Field(
        ...,
        validation_alias=AliasChoices("phone", "telefone"),
        description="Phone number in any format; normalized server-side"
    )
    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "nome"),
    )
    address: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("address", "endereco"),
    )
    reference: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("reference", "referencia"),
    )

    model_config = {"populate_by_name": True}


class OrderRequest(BaseModel):
    """
    Body of POST /api/orders.

    Validates:
    - customer: name, address and phone present
    - cart: at least one item
    - payment_method: non-empty
    - cash_tendered: optional amount such as "30,00"
    """
    customer: CustomerInput = Field(
        ...,
        validation_alias=AliasChoices("customer", "cliente"),
    )
    cart: list[CartItem] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("cart", "carrinho"),
    )
    payment_method: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("payment_method", "pagamento"),
    )
    cash_tendered: Optional[Decimal] = Field(
        None,
        validation_alias=AliasChoices("cash_tendered", "troco"),
        description="Cash handed over by the customer, when paying in cash"
    )

    @field_validator("cash_tendered", mode="before")
    @classmethod
    def parse_cash_tendered(cls, v):
        """Accept Brazilian formatted amounts ("30,00")."""
        return parse_amount(v)

    @field_validator("payment_method")
    @classmethod
    def strip_payment_method(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("payment_method must not be blank")
        return v

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "customer": {
                        "phone": "(11) 98765-4321",
                        "name": "Maria",
                        "address": "Rua das Flores, 10",
                        "reference": "Portão azul"
                    },
                    "cart": [{"name": "X-Burger", "price": 10.0, "quantity": 2}],
                    "payment_method": "Dinheiro",
                    "cash_tendered": "30,00"
                }
            ]
        }
    }


class IdentifyRequest(BaseModel):
    """Body of POST /api/customers/identify."""
    phone: str = Field(
        ...,
        validation_alias=AliasChoices("phone", "telefone"),
    )

    model_config = {"populate_by_name": True}


class SessionEventType(str, Enum):
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


class SessionEvent(BaseModel):
    """Lifecycle event pushed by the messaging gateway."""
    event: SessionEventType
    data: Optional[str] = Field(
        None,
        max_length=4096,
        description="QR payload for 'qr', reason for failures"
    )


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    success: bool = False
    message: str = Field(..., description="Error description")


class CustomerResponse(BaseModel):
    phone: str
    name: Optional[str] = None
    address: Optional[str] = None
    reference: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class IdentifyResponse(BaseModel):
    success: bool = True
    is_new: bool
    customer: CustomerResponse


class OrderCreatedResponse(BaseModel):
    success: bool = True
    order_id: int


class HistoryItem(BaseModel):
    name: str
    quantity: int
    observation: str = ""


class HistoryEntry(BaseModel):
    order_id: int
    created_at: datetime
    total: Optional[float] = None
    items: list[HistoryItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for GET /health."""
    whatsapp: str = Field(..., description="Messaging session state")
    database_connections: int = Field(..., ge=0, description="Checked-out storage connections")
    uptime_seconds: float = Field(..., ge=0)


class ProbeResponse(BaseModel):
    """Response model for liveness/readiness probes."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


class WebhookResponse(BaseModel):
    """Response model for accepted session events."""
    status: str = Field(default="ok", description="Operation status")
