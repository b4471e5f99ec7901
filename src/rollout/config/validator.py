"""Validation utilities for Rollout configuration."""

from pydantic import ValidationError as PydanticValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into human-readable messages.

    Each message names the dotted field path, e.g.
    ``environments.production.ssh.host``, so operators can find the offending
    key in their YAML file.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        List of human-readable error messages, one per field error
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "(root)"

        msg = error.get("msg", "Unknown error")
        error_type = error.get("type", "")

        if error_type == "extra_forbidden":
            formatted = f"Field '{field_path}': unknown key"
        elif error_type == "value_error" and loc:
            input_val = error.get("input")
            formatted = f"Field '{field_path}': {msg} (received: {input_val!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"

        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]
