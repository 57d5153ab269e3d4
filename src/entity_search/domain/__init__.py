"""Domain layer: documents, queries, results. No infrastructure dependencies."""
