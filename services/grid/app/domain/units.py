"""
Conversión entre unidades atómicas y unidades de UI de tokens SPL.
"""
from decimal import Decimal, ROUND_DOWN


def parse_units(value: int, decimals: int) -> Decimal:
    """Unidades atómicas -> unidades de UI, truncando a `decimals` decimales."""
    quantum = Decimal(1).scaleb(-decimals)
    return (Decimal(value) / (Decimal(10) ** decimals)).quantize(quantum, rounding=ROUND_DOWN)


def format_units(amount: Decimal, decimals: int) -> int:
    """Unidades de UI -> unidades atómicas (se descarta la fracción sobrante)."""
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def truncate(value: Decimal, places: int) -> Decimal:
    """Trunca (sin redondear) a `places` decimales."""
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


SUBSCRIPT_DIGITS = str.maketrans("0123456789", "₀₁₂₃₄₅₆₇₈₉")


def format_price(price: Decimal, digits: int = 5) -> str:
    """
    Formatea precios de memecoins: con tres o más ceros tras la coma se
    comprimen en un subíndice (0.000001234 -> 0.0₅1234).
    """
    price = Decimal(price)
    if price == 0:
        return "0"
    if price < 0:
        return "-" + format_price(-price, digits)
    if price >= 1:
        return format(truncate(price, digits).normalize(), 'f')

    fraction = format(price, '.20f').split('.')[1]
    significant = fraction.lstrip('0')
    zero_count = len(fraction) - len(significant)
    if not significant:
        return "0"
    if zero_count < 3:
        return format(truncate(price, digits).normalize(), 'f')
    return f"0.0{str(zero_count).translate(SUBSCRIPT_DIGITS)}{significant[:digits].rstrip('0')}"
