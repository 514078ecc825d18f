"""Investment tracking helpers."""

from decimal import Decimal
from typing import Optional
from uuid import uuid4

from spendxp.ledger.currency import round_half_up
from spendxp.models.finance import Investment, InvestmentType


def new_investment(
    account_name: str,
    current_value: Decimal,
    type: InvestmentType = InvestmentType.STOCKS,
    ticker: Optional[str] = None,
    projected_growth: float = 0.0,
) -> Investment:
    return Investment(
        id=f"inv-{uuid4().hex[:12]}",
        account_name=account_name,
        ticker=ticker,
        type=type,
        current_value=current_value,
        projected_growth=projected_growth,
    )


def projected_value(investment: Investment, years: int) -> Decimal:
    """Value after `years` of annual compounding at the projected growth rate."""
    rate = Decimal(1) + Decimal(str(investment.projected_growth)) / Decimal(100)
    return round_half_up(investment.current_value * rate ** years, 2)


def analysis_subject(investment: Investment) -> str:
    """What the analyst is asked about: `$TICKER`, or the account name."""
    if investment.ticker:
        return f"${investment.ticker}"
    return investment.account_name
