"""IBAN helpers."""

import re
from typing import Optional


def normalize_iban(iban: Optional[str]) -> Optional[str]:
    """Normalize an IBAN or other account identifier.

    Strips spaces and dashes and upper-cases the result. Empty input
    returns None.
    """
    if iban is None:
        return None
    normalized = re.sub(r"[\s-]", "", iban).upper()
    return normalized or None


def is_valid_iban(iban: str) -> bool:
    """Check an IBAN with the ISO 13616 mod-97 checksum."""
    iban = normalize_iban(iban) or ""
    if not re.fullmatch(r"[A-Z]{2}\d{2}[A-Z0-9]{10,30}", iban):
        return False
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1
