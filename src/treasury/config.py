"""Matching configuration loaded from environment variables."""

import os
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from treasury.domain.entities import DEFAULT_TRANSFER_KEYWORDS, MatchingConfig
from treasury.domain.errors import ValidationError

ENV_DATE_WINDOW = "TREASURY_DATE_WINDOW_DAYS"
ENV_TOLERANCE_PERCENT = "TREASURY_AMOUNT_TOLERANCE_PERCENT"
ENV_TOLERANCE_FIXED = "TREASURY_AMOUNT_TOLERANCE_FIXED"
ENV_MAPPING_THRESHOLD = "TREASURY_MANUAL_MAPPING_THRESHOLD"
ENV_TRANSFER_KEYWORDS = "TREASURY_TRANSFER_KEYWORDS"


def _decimal(environ: Mapping[str, str], key: str, default: Decimal) -> Decimal:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number, got '{raw}'")
    if value < 0:
        raise ValidationError(f"{key} must not be negative, got '{raw}'")
    return value


def load_matching_config(
    environ: Optional[Mapping[str, str]] = None,
    date_window_days: Optional[int] = None,
    amount_tolerance_percent: Optional[Decimal] = None,
    amount_tolerance_fixed: Optional[Decimal] = None,
) -> MatchingConfig:
    """Build the matching configuration.

    Explicit arguments win over environment variables, which win over the
    MatchingConfig defaults.

    Args:
        environ: Environment mapping (defaults to os.environ)
        date_window_days: Override for the date window
        amount_tolerance_percent: Override for the percentage tolerance
        amount_tolerance_fixed: Override for the fixed tolerance

    Returns:
        MatchingConfig instance

    Raises:
        ValidationError: If a value is malformed or out of range
    """
    environ = os.environ if environ is None else environ
    defaults = MatchingConfig()

    if date_window_days is None:
        raw_window = environ.get(ENV_DATE_WINDOW)
        if raw_window is None or not raw_window.strip():
            date_window_days = defaults.date_window_days
        else:
            try:
                date_window_days = int(raw_window)
            except ValueError:
                raise ValidationError(f"{ENV_DATE_WINDOW} must be an integer, got '{raw_window}'")
    if date_window_days < 0:
        raise ValidationError(f"Date window must not be negative, got {date_window_days}")

    if amount_tolerance_percent is None:
        amount_tolerance_percent = _decimal(
            environ, ENV_TOLERANCE_PERCENT, defaults.amount_tolerance_percent
        )
    if amount_tolerance_fixed is None:
        amount_tolerance_fixed = _decimal(
            environ, ENV_TOLERANCE_FIXED, defaults.amount_tolerance_fixed
        )
    threshold = _decimal(environ, ENV_MAPPING_THRESHOLD, defaults.manual_mapping_threshold)
    if threshold > 1:
        raise ValidationError(f"{ENV_MAPPING_THRESHOLD} must be between 0 and 1, got {threshold}")

    raw_keywords = environ.get(ENV_TRANSFER_KEYWORDS)
    if raw_keywords:
        keywords = tuple(k.strip().upper() for k in raw_keywords.split(",") if k.strip())
    else:
        keywords = DEFAULT_TRANSFER_KEYWORDS

    return MatchingConfig(
        date_window_days=date_window_days,
        amount_tolerance_percent=Decimal(amount_tolerance_percent),
        amount_tolerance_fixed=Decimal(amount_tolerance_fixed),
        manual_mapping_threshold=threshold,
        transfer_keywords=keywords,
    )
