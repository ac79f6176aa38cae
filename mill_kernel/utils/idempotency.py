"""
Idempotency key generation utilities.

An idempotency key names one business event (a sale invoice, a purchase
invoice, a production run).  Replaying an event with the same key is a no-op,
and only keyed events are retried after a concurrency conflict.
"""

from mill_kernel.exceptions import ValidationError


def normalize_business_key(value: str | None, field: str) -> str:
    """
    Strip surrounding whitespace from an invoice number or production code.

    The stripped value is the one stored, looked up and keyed on, so
    "INV-9" and " INV-9 " name the same event.

    Raises:
        ValidationError: If nothing is left after stripping.
    """
    normalized = value.strip() if isinstance(value, str) else ""
    if not normalized:
        raise ValidationError(f"{field} is required", field=field)
    return normalized


def generate_idempotency_key(event_kind: str, business_key: str) -> str:
    """
    Generate an idempotency key for a business event.

    Format: event_kind:business_key

    Example:
        >>> generate_idempotency_key("sale", "INV-2024-0001")
        'sale:INV-2024-0001'
    """
    return f"{event_kind}:{normalize_business_key(business_key, 'business_key')}"


def parse_idempotency_key(key: str) -> tuple[str, str]:
    """
    Parse an idempotency key into (event_kind, business_key).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1]
