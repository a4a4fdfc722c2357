"""
BookDrop test suite.

- unit/: identification, ranking, location and rate limiting in isolation
- integration/: list storage on SQLite and the HTTP API
"""
