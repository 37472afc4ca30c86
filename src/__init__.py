"""
Ledger Core - Source Package

The offline-first core behind a personal finance dashboard: when bills and
income come due, durable local state, cloud sync and the transaction ledger.

DESIGN PRINCIPLES:
1. The device always renders something (local first, cloud second)
2. Fail visibly: problems come back as warnings, never as crashes
3. No silent data loss
4. Every financial action is recorded in an append-only ledger
5. Storage layer is swappable
"""

__version__ = "3.1.0"
__author__ = "Ledger Core Team"
