"""Tax endpoints — exchange rate lookup, preview, confirmation."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.dependencies import Actor, get_actor, get_db, get_rate_provider, get_tax_service
from entryflow.schemas.tax import (
    ForexRateRequest,
    ForexRateResponse,
    TaxComputationResponse,
    TaxLineResponse,
    TaxRequest,
    TaxSummary,
)
from entryflow.services.rate_provider import RateProvider
from entryflow.tax_engine.service import ComputationResult, TaxComputationService

router = APIRouter()


@router.post("/tax/forex-rate", response_model=ForexRateResponse)
async def forex_rate(
    request: ForexRateRequest,
    rate_provider: RateProvider = Depends(get_rate_provider),
) -> ForexRateResponse:
    """Live rate when available, otherwise the fallback rate (flagged, never an error)."""
    quote = await rate_provider.get_rate(request.base_currency, request.quote_currency)
    return ForexRateResponse(
        rate=quote.rate,
        base_currency=quote.base_currency,
        quote_currency=quote.quote_currency,
        rate_date=quote.rate_date,
        source=quote.source,
        is_fallback=quote.is_fallback,
    )


@router.post("/entries/{entry_id}/tax/preview", response_model=TaxComputationResponse)
async def preview_tax(
    entry_id: uuid.UUID,
    request: TaxRequest | None = None,
    db: AsyncSession = Depends(get_db),
    tax: TaxComputationService = Depends(get_tax_service),
) -> TaxComputationResponse:
    request = request or TaxRequest()
    result = await tax.preview(
        db,
        entry_id,
        exchange_rate=request.exchange_rate,
        base_currency=request.base_currency,
        quote_currency=request.quote_currency,
    )
    return _result_to_response(result)


@router.post("/entries/{entry_id}/tax/confirm", response_model=TaxComputationResponse)
async def confirm_tax(
    entry_id: uuid.UUID,
    request: TaxRequest | None = None,
    db: AsyncSession = Depends(get_db),
    tax: TaxComputationService = Depends(get_tax_service),
    actor: Actor = Depends(get_actor),
) -> TaxComputationResponse:
    """Persist the computation once; repeated calls return the stored computation."""
    request = request or TaxRequest()
    result = await tax.confirm(
        db,
        entry_id,
        exchange_rate=request.exchange_rate,
        base_currency=request.base_currency,
        quote_currency=request.quote_currency,
        actor=actor.id,
        actor_role=actor.role,
    )
    return _result_to_response(result)


@router.get("/entries/{entry_id}/tax", response_model=TaxComputationResponse)
async def get_tax(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    tax: TaxComputationService = Depends(get_tax_service),
) -> TaxComputationResponse:
    row = await tax.get(db, entry_id)
    if row is None:
        raise HTTPException(status_code=404, detail="No confirmed tax computation for this entry")
    return _result_to_response(ComputationResult.from_row(row, created=False))


def _result_to_response(result: ComputationResult) -> TaxComputationResponse:
    return TaxComputationResponse(
        entry_id=result.entry_id,
        rows=[TaxLineResponse.model_validate(line) for line in result.rows],
        summary=TaxSummary(**result.summary),
        rate_source=result.rate_source,
        is_fallback=result.is_fallback,
        persisted=result.persisted,
        created=result.created,
        computation_id=result.computation_id,
        warnings=result.warnings,
    )
