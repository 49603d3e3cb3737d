"""Pydantic schemas for exchange rates and tax computation."""

import uuid
from decimal import Decimal

from pydantic import BaseModel, Field


class ForexRateRequest(BaseModel):
    base_currency: str = "USD"
    quote_currency: str = "PHP"


class ForexRateResponse(BaseModel):
    rate: Decimal
    base_currency: str
    quote_currency: str
    rate_date: str
    source: str
    is_fallback: bool = False


class TaxRequest(BaseModel):
    exchange_rate: Decimal | None = Field(
        None, gt=0, description="Officer-supplied rate; omit to use the rate provider"
    )
    base_currency: str | None = None
    quote_currency: str | None = None


class TaxLineResponse(BaseModel):
    line_no: int
    description: str
    hs_code: str
    currency: str
    declared_value: Decimal
    exchange_rate: Decimal
    declared_value_local: Decimal
    duty_rate: Decimal
    duty_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_tax: Decimal

    model_config = {"from_attributes": True}


class TaxSummary(BaseModel):
    total_duty: Decimal
    total_vat: Decimal
    total_tax: Decimal


class TaxComputationResponse(BaseModel):
    entry_id: uuid.UUID
    rows: list[TaxLineResponse]
    summary: TaxSummary
    rate_source: str
    is_fallback: bool = False
    persisted: bool = False
    created: bool = False
    computation_id: uuid.UUID | None = None
    warnings: list[str] = Field(default_factory=list)
