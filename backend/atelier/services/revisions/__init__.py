"""Append-only revision ledger."""
