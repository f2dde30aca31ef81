"""Persistence layer: ORM models, session factory and repositories."""
