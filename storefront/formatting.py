from decimal import Decimal

_SYMBOLS = {"usd": "$", "cad": "CA$", "hkd": "HK$", "eur": "€", "gbp": "£"}


def format_currency(amount: int, currency: str = "usd") -> str:
    """Minor units to a display string, e.g. 2999 usd -> "$29.99"."""
    value = Decimal(amount) / 100
    symbol = _SYMBOLS.get(currency.lower())
    if symbol is None:
        return f"{currency.upper()} {value:,.2f}"
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def mask_address(line1) -> str:
    if not line1:
        return "N/A"
    if len(line1) <= 4:
        return line1
    return "****" + line1[-4:]


def mask_email(email) -> str:
    if not email:
        return "N/A"
    local, _, domain = email.partition("@")
    if not domain or len(local) <= 2:
        return email
    return local[:2] + "***@" + domain
