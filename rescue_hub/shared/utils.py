from uuid import UUID

from rescue_hub.shared.errors import ValidationError


def parse_uuid(value, label: str = "ID") -> UUID:
    """Parse a path/body identifier, raising ValidationError on a malformed value."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid {label} format")
