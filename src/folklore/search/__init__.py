"""
Indexing and query engine package.

- analyzers: Tokenizer (word splitting, normalization, n-grams)
- documents: Document store keyed by stable ids
- postings: Term -> per-document postings, copy-on-write
- snapshot: Immutable index snapshots and their publisher
- indexer: Atomic per-document ingestion
- query / engine: Query parsing and BM25 ranking
- sqlite_storage: Snapshot persistence
"""
