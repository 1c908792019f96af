"""Schema migrations application package."""
