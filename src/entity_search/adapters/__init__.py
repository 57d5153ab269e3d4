"""Adapters for external collaborators: the record store and the result cache."""
