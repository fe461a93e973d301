"""
Contralor Kernel - livestock regulatory ledger engine

Turns approved herd and animal events into the DICOSE "Contralor Interno"
register:
- Rule-checked approval of livestock events
- Movement guide registry with sale/purchase mirror linkage
- Append-only ledger entries with per-category head-count lines
- Reconciled period closing (initial + in - out = final)
- Void and correction without rewriting history
- Hash-chained audit trail
"""

__version__ = "0.1.0"
