"""Household ledger backend: cards, banks, balances and card withdrawals."""
