"""Pure domain layer: clock abstraction and immutable event payloads."""
