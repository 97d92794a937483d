from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Tuple

from .exceptions import CurrencyFormatError

MONEY_QUANT = Decimal("0.01")

# locale -> (separador de miles, separador decimal, patron)
LOCALE_CONVENTIONS: Dict[str, Tuple[str, str, str]] = {
    "es_MX": (",", ".", "{symbol}{amount}"),
    "en_US": (",", ".", "{symbol}{amount}"),
    "es_CL": (".", ",", "{symbol}{amount}"),
    "es_CO": (".", ",", "{symbol} {amount}"),
    "es_ES": (".", ",", "{amount} {symbol}"),
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "MXN": "$",
    "USD": "$",
    "CLP": "$",
    "COP": "$",
    "EUR": "€",
}


@dataclass(frozen=True)
class CurrencyConfig:
    locale: str = "es_MX"
    currency_code: str = "MXN"

    def __post_init__(self) -> None:
        if self.locale not in LOCALE_CONVENTIONS:
            raise ValueError(f"Locale no soportado: {self.locale}")
        if not self.currency_code or len(self.currency_code) != 3:
            raise ValueError(f"Codigo de moneda invalido: {self.currency_code}")

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS.get(self.currency_code.upper(), self.currency_code.upper())


DEFAULT_CURRENCY = CurrencyConfig()


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise CurrencyFormatError(f"Monto invalido: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise CurrencyFormatError(f"Monto invalido: {value!r}") from exc


def format_money(value: Any, config: CurrencyConfig = DEFAULT_CURRENCY) -> str:
    """Formatea un monto no negativo como moneda, p. ej. 1500 -> '$1,500.00' (es_MX).

    Valores no finitos, negativos o no numericos lanzan CurrencyFormatError en lugar
    de producir un texto corrupto.
    """
    amount = _to_decimal(value)
    if not amount.is_finite() or amount < 0:
        raise CurrencyFormatError(f"Monto invalido: {value!r}")
    group_sep, decimal_sep, pattern = LOCALE_CONVENTIONS[config.locale]
    text = f"{round_money(amount):,.2f}"
    text = text.replace(",", "\x00").replace(".", decimal_sep).replace("\x00", group_sep)
    return pattern.format(symbol=config.symbol, amount=text)
