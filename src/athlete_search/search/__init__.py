"""
Search indexing and query engine package.

This package provides a pure-Python search stack:
- schema: Field types and the athlete schema
- analyzers: Tokenizers and filters (lowercase, accent folding, exact match)
- document_index: SQLite-based document and postings storage with snapshots
- query / query_parser: Query tree nodes and the query-string parser
- query_builder: Criteria to query-tree translation
- executor: Scoring and ranking against one snapshot
- paginator: Page windowing over ranked hits
"""
