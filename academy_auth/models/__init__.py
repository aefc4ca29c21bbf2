"""Data models (ORM tables, API contracts, enums)."""
