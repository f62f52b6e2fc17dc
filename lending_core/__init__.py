"""
Lending Core

Loan lifecycle and loan accounting engine: amortization schedules,
an append-only payment ledger, balance reconciliation and the loan
status state machine. All money math uses Decimal.
"""

__version__ = "1.0.0"
