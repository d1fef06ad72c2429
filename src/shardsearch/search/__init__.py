"""
Document analysis package.

- schema: field definitions and the per-index schema registry
- analyzers: analyzer factories and scoped analyzer sessions
- analysis: term-position tables and postings generation
"""
