"""
mako-hooks Test Suite.

- Unit tests for individual components
- Integration tests for the hooks and the CLI
- Acceptance tests for compaction survival and memory-service fallback
"""
