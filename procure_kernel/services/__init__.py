"""Kernel services: journal writing, sequences, activity logging."""
