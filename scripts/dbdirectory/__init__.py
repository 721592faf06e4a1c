"""SQL-backed identity directory.

Exposes an external relational database as an identity directory for a
hosting identity server: lookups by id, username or email, credential
validation and rotation, dialect-aware paging and reconciliation of cached
identities against live database state.
"""
