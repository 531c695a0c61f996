"""Pydantic models for items, configuration and persisted records."""
