"""Transaction ledger package."""

from src.ledger.transaction_log import TransactionLog

__all__ = ["TransactionLog"]
