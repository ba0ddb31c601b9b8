"""LinkVault backend."""
