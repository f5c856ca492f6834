"""Domain layer for treasury application."""

_SERVICES = {
    "AccountService": "treasury.domain.account",
    "MovementService": "treasury.domain.movement",
    "TransferService": "treasury.domain.transfers",
    "StatementImportService": "treasury.domain.statement_import",
    "TreasuryService": "treasury.domain.treasury",
}

__all__ = list(_SERVICES)


# Services are imported lazily: the database layer imports domain.entities,
# and the services import the database layer.
def __getattr__(name):
    if name in _SERVICES:
        import importlib
        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
