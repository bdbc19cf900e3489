from decimal import Decimal

from fastapi import APIRouter, Query

from modelpass.core.errors import InvalidUnit, http_error
from modelpass.schemas.pricing import QuoteResponse, period_seconds
from modelpass.services.pricing import quote

router = APIRouter()


@router.get(
    "/quote",
    response_model=QuoteResponse,
    summary="Quote a duration",
    responses={400: {"description": "Unknown duration unit"}},
)
async def get_quote(
    base_price: Decimal = Query(..., ge=0, description="Monthly base price of the plan"),
    unit: str = Query(..., description="hour, day, week or month"),
) -> QuoteResponse:
    """Price one unit of access against a monthly base price."""
    try:
        priced = quote(base_price, unit)
    except InvalidUnit as exc:
        raise http_error(exc) from None
    return QuoteResponse(
        base_price=base_price,
        unit=priced.unit,
        price=priced.price,
        period_seconds=period_seconds(priced.period_length),
    )
