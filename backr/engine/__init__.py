"""Consistency engine: ledger, roster, projector, controller and live views."""
