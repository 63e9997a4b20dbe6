"""Invalidation planning and mutation coordination."""
