"""Persistence — state store, run lock and audit ledger."""
