"""Durable storage — async engine, ORM models, and the plot cache store."""
