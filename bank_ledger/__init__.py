"""
Bank Ledger

Account-balance ledger with a transaction engine that applies deposits,
withdrawals and transfers as atomic, conditional store mutations over an
append-only history of ledger entries.
"""

__version__ = "1.0.0"
