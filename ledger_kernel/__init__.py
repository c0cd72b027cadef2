"""
Ledger Kernel - append-only ledger and balance engine.

An append-only ledger for supplier balances and inventory movements with:
- Per-account serialized writes (in-process lock + row lock)
- Gap-free per-account sequences
- Running balances verified by full replay
- Status derived at query time, never stored
"""

__version__ = "0.1.0"
