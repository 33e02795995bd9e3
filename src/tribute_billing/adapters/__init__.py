"""Adapters – HTTP framework integrations (install the matching extra)."""
