"""
Ledger & settlement exceptions
"""


class LedgerError(Exception):
    pass


class LedgerUnavailableError(LedgerError):
    """Store failure on a write path; the update was not applied"""
    pass


class SettlementConflictError(LedgerError):
    """Record kept changing underneath the compare-and-swap"""
    pass


class InvalidOutcomeError(LedgerError):
    pass
