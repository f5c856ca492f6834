"""Explicit context passed into every engine call."""

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from treasury.database.base import Database
from treasury.domain.entities import Account, MatchingConfig


@dataclass
class TreasuryContext:
    """Storage handle, tolerances and clock shared by the treasury services.

    The import lock serializes import, transfer detection and classification
    across every account of the user, since transfer detection needs a
    consistent cross-account view.
    """

    db: Database
    config: MatchingConfig = field(default_factory=MatchingConfig)
    clock: Callable[[], date] = date.today
    import_lock: threading.Lock = field(default_factory=threading.Lock)

    def today(self) -> date:
        return self.clock()

    def active_accounts(self) -> list[Account]:
        """Current snapshot of active accounts, read fresh from storage."""
        return self.db.list_accounts(include_inactive=False)
