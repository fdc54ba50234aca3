"""Core infrastructure: database, scope, errors, logging and permissions."""
