"""Arcana knowledge base: retrieval-augmented context for card readings."""
