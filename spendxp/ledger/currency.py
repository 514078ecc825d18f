"""
Currency rules.

Each supported currency has a display symbol, a decimal precision and a
multiplier from base (USD) units. The multiplier is only used to scale base
thresholds, such as the weekly saving quest target, into the user's
currency; stored amounts are never converted.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Union

from spendxp.models.finance import CurrencyCode


Number = Union[int, float, Decimal]


class CurrencyRule(NamedTuple):
    symbol: str
    name: str
    multiplier: Decimal
    precision: int


CURRENCIES: dict[CurrencyCode, CurrencyRule] = {
    CurrencyCode.USD: CurrencyRule("$", "US Dollar", Decimal("1"), 2),
    CurrencyCode.CAD: CurrencyRule("CA$", "Canadian Dollar", Decimal("1.35"), 2),
    CurrencyCode.INR: CurrencyRule("₹", "Indian Rupee", Decimal("83"), 0),
    CurrencyCode.AUD: CurrencyRule("A$", "Australian Dollar", Decimal("1.5"), 2),
    CurrencyCode.SAR: CurrencyRule("SR", "Saudi Riyal", Decimal("3.75"), 2),
    CurrencyCode.EUR: CurrencyRule("€", "Euro", Decimal("0.92"), 2),
    CurrencyCode.GBP: CurrencyRule("£", "British Pound", Decimal("0.79"), 2),
    CurrencyCode.JPY: CurrencyRule("¥", "Japanese Yen", Decimal("150"), 0),
    CurrencyCode.CNY: CurrencyRule("¥", "Chinese Yuan", Decimal("7.2"), 2),
    CurrencyCode.NZD: CurrencyRule("NZ$", "New Zealand Dollar", Decimal("1.6"), 2),
    CurrencyCode.BRL: CurrencyRule("R$", "Brazilian Real", Decimal("5"), 2),
    CurrencyCode.AED: CurrencyRule("AED", "UAE Dirham", Decimal("3.67"), 2),
    CurrencyCode.SGD: CurrencyRule("S$", "Singapore Dollar", Decimal("1.35"), 2),
    CurrencyCode.ZAR: CurrencyRule("R", "South African Rand", Decimal("19"), 2),
    CurrencyCode.MXN: CurrencyRule("Mex$", "Mexican Peso", Decimal("17"), 2),
    CurrencyCode.HKD: CurrencyRule("HK$", "Hong Kong Dollar", Decimal("7.8"), 2),
    CurrencyCode.KRW: CurrencyRule("₩", "South Korean Won", Decimal("1300"), 0),
    CurrencyCode.PHP: CurrencyRule("₱", "Philippine Peso", Decimal("56"), 2),
    CurrencyCode.IDR: CurrencyRule("Rp", "Indonesian Rupiah", Decimal("15500"), 0),
    CurrencyCode.THB: CurrencyRule("฿", "Thai Baht", Decimal("36"), 2),
    CurrencyCode.VND: CurrencyRule("₫", "Vietnamese Dong", Decimal("24500"), 0),
    CurrencyCode.MYR: CurrencyRule("RM", "Malaysian Ringgit", Decimal("4.7"), 2),
    CurrencyCode.TRY: CurrencyRule("₺", "Turkish Lira", Decimal("31"), 2),
    CurrencyCode.NGN: CurrencyRule("₦", "Nigerian Naira", Decimal("1500"), 2),
    CurrencyCode.RUB: CurrencyRule("₽", "Russian Ruble", Decimal("92"), 2),
}


def round_half_up(value: Number, places: int = 0) -> Decimal:
    """Round to `places` decimals, ties away from zero."""
    exponent = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def round_to_int(value: Number) -> int:
    return int(round_half_up(value))


def get_rule(currency: CurrencyCode) -> CurrencyRule:
    return CURRENCIES[CurrencyCode(currency)]


def is_supported(code: object) -> bool:
    try:
        return CurrencyCode(code) in CURRENCIES
    except ValueError:
        return False


def convert_base_amount(base_amount: Number, currency: CurrencyCode) -> Decimal:
    """
    Scale a base (USD) amount into `currency`.

    Rounded to the currency precision: USD 20 -> 20.00, INR 20 -> 1660.
    """
    rule = get_rule(currency)
    return round_half_up(Decimal(str(base_amount)) * rule.multiplier, rule.precision)


def format_amount(amount: Number, currency: CurrencyCode) -> str:
    """Format an amount with the currency symbol, grouping and precision."""
    rule = get_rule(currency)
    value = round_half_up(amount, rule.precision)
    return f"{rule.symbol}{value:,.{rule.precision}f}"
