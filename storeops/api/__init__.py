"""StoreOps HTTP API."""
