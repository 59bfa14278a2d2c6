"""Control surface route modules."""
