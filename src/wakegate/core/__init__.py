"""Core infrastructure: auth, cache, database, errors, jobs and logging."""
