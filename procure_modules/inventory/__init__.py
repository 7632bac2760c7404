"""Inventory Module: the monthly moving-average cost ledger."""
