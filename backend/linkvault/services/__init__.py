"""Session and authentication services."""
