"""
SQLite persistence layer.

Modules
-------
connection   : get_connection() context manager + Database handle.
schema       : DDL and idempotent apply_schema().
repositories : BaseRepository and per-table repositories (connection-scoped).
store        : Connection-per-call facades implementing the collaborator
               protocols in ``remarketing.interfaces``.
"""
