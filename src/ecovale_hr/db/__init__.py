"""Persistence: async engine, sessions and ORM models."""
