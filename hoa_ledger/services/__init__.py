"""Ledger core services: fiscal calendar, ledger store, quarter summaries, formatting."""
