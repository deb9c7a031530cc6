"""Core persistence package: settings and database layer."""
