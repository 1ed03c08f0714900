"""
Database package for Tribunal.

Public API:
    - db_connection: process-wide ConnectionManager
    - SchemaManager: creates the vote tables and indexes
"""
