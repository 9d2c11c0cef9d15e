"""Historical ledger service."""

from crel.services.ledger.service import HistoricalLedger

__all__ = ["HistoricalLedger"]
