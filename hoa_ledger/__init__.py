"""Financial ledger core for HOA dues and credit balances.

Per-unit credit balances with an append-only audit history, fiscal-calendar
mapping in a fixed deployment time zone, and quarterly dues summaries
derived from the monthly ledger facts.
"""

__version__ = "0.1.0"
