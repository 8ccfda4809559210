"""Request-scoped gates and HTTP middleware."""
