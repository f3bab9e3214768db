"""Kernel services: imperative shell infrastructure (flush only, never commit)."""
