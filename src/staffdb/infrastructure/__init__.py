"""Infrastructure layer — pooled connections, statement execution,
repositories and transactions.

This layer depends on stdlib, SQLAlchemy, the domain layer and config.
It must never import from cli.
"""
