"""Service layer: index lifecycle and search orchestration."""
