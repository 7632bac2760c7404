"""
Procure Kernel - shared infrastructure for the procurement ledger.

- Typed exceptions with HTTP intent
- Structured JSON logging
- SQLAlchemy base, engine and transactional scope
- Journal persistence with balance enforcement
- Per-kind document number sequences
"""

__version__ = "0.1.0"
