"""HTTP clients for the storage gateway and the index service."""
