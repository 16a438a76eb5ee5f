"""Points wallet ledger and period-based round settlement service."""
