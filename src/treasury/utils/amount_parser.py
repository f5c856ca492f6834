"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

CENT = Decimal("0.01")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to two decimal places."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal with two decimal places.

    Handles various formats:
    - "123.45", "-123.45", "+123.45"
    - "1,234.56" (English thousands)
    - "1.234,56" and "-1234,56" (Spanish/European)
    - "€1.234,56", "1.234,56 EUR", "$123.45"
    - "(123.45)" (negative in parentheses)
    - "123.45-" (trailing minus, common in bank exports)

    A lone separator followed by exactly three digits is read as thousands
    ("1.234" and "1,234" are 1234). Amounts with fractions of a cent are
    rejected rather than rounded.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    text = str(amount_str).strip()

    is_negative = False
    if text.startswith("(") and text.endswith(")"):
        is_negative = True
        text = text[1:-1]

    # Currency symbols and codes; \s also covers non-breaking and thin spaces
    text = re.sub(r"[$€£¥]|EUR|USD|GBP", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s", "", text)

    if text.endswith("-"):
        is_negative = not is_negative
        text = text[:-1]
    if text.startswith("-"):
        is_negative = not is_negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            text = text.replace(",", "")
        else:
            whole, _, decimals = text.partition(",")
            if len(decimals) == 3 and whole not in ("", "0"):
                # "1,234" reads as thousands
                text = whole + decimals
            else:
                text = whole + "." + decimals
    elif text.count(".") > 1:
        text = text.replace(".", "")
    elif "." in text:
        whole, _, decimals = text.partition(".")
        if len(decimals) == 3 and whole not in ("", "0"):
            # "1.234" reads as thousands
            text = whole + decimals

    if not re.fullmatch(r"\d+(\.\d+)?|\.\d+", text):
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if len(text.partition(".")[2]) > 2:
        raise ValueError(f"Amount '{amount_str}' has more than two decimals")

    try:
        amount = to_money(text)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")
    return -amount if is_negative else amount
