"""Kernel ORM models."""

from procure_kernel.models.journal import JournalEntry, JournalEntryLine

__all__ = ["JournalEntry", "JournalEntryLine"]
