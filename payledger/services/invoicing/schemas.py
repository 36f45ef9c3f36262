"""API request/response schemas for invoicing endpoints (camelCase on the wire)."""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from payledger.common.schemas import CamelModel, Money


class InvoiceCreateRequest(BaseModel):
    """Payload accepted by `POST /invoices`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    client_id: str = ""
    client_name: str
    period_start: datetime.date
    period_end: datetime.date
    contact_rate: Decimal = Field(ge=0)
    vat_percent: Decimal = Field(default=Decimal("0"), ge=0, le=Decimal("999.99"), decimal_places=2)


class InvoiceResponse(CamelModel):
    invoice_id: str
    invoice_number: str
    client_id: str
    client_name: str
    period_start: datetime.date
    period_end: datetime.date
    total_escort_days: Money
    escort_amount: Money
    total_guard_days: int
    guard_amount: Money
    total_labor_hours: Money
    labor_amount: Money
    subtotal: Money
    vat_percent: Money
    vat_amount: Money
    total_amount: Money
    status: str
    created_at: datetime.date


class InvoiceSummaryResponse(CamelModel):
    total: int
    draft: int
    finalized: int
    paid: int
