"""Persistence layer: engine, models, migrations and the versioned store."""
