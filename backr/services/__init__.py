"""Request-scoped services over the engine."""
