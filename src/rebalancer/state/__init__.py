"""Persistence: strategy state and price history JSON files."""
