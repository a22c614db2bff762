"""Repair ticket lifecycle and price-history ledger service."""
