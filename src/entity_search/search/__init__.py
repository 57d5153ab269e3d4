"""
In-memory indexing and query engine package.

- analyzers: Tokenizer pipeline and the ``tokenize`` entry point
- word_index: Inverted term -> document index
- facet_index: Facet name -> value -> document index
- snapshot: Immutable (documents, word index, facet index) triple
- scoring: Additive relevance scoring
- engine: Query execution over a snapshot
"""
