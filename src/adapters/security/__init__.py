"""Security adapters - password hashing and session credentials."""
