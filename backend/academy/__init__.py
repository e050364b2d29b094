"""Academy members backend."""
