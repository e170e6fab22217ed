"""
Configuration Schema System.

This module provides schema declaration and validation for tether settings.

Key features:
- Type-safe field definitions with constraints
- Path fields resolved against the configuration file's directory
- Defaults for fields missing from the configuration file
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class ValidationError(SchemaError):
    """Raised when value validation fails."""

    pass


@dataclass
class ConfigField:
    """
    Represents a configuration field with type and constraints.

    Attributes:
        type_: The expected type of the field value
        default: Default value for the field
        description: Human-readable description
        min: Minimum length (str fields only)
        max: Maximum length (str fields only)
        choices: List of allowed values (optional)
        path: Value is a filesystem path; relative values resolve against
            the directory of the configuration file
    """

    type_: type
    default: Any
    description: str = ""
    min: int | None = None
    max: int | None = None
    choices: list[Any] | None = None
    path: bool = False

    def __post_init__(self):
        if not isinstance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )

        if self.type_ is not str and (self.min is not None or self.max is not None or self.path):
            raise SchemaError(
                f"Length and path options only apply to str fields. Got {self.type_.__name__}"
            )

        if self.choices is not None and self.default not in self.choices:
            raise SchemaError(
                f"Default value {self.default!r} not in choices {self.choices}"
            )

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field's constraints.

        Args:
            value: The value to validate

        Raises:
            ValidationError: If validation fails
        """
        # bool is a subclass of int
        if not isinstance(value, self.type_) or (
            isinstance(value, bool) and self.type_ is not bool
        ):
            raise ValidationError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise ValidationError(
                f"Value {value!r} not in allowed choices {self.choices}"
            )

        if self.type_ is str:
            if self.min is not None and len(value) < self.min:
                raise ValidationError(
                    f"String length {len(value)} is less than minimum {self.min}"
                )
            if self.max is not None and len(value) > self.max:
                raise ValidationError(
                    f"String length {len(value)} is greater than maximum {self.max}"
                )

    def convert(self, value: Any, base_dir: Path) -> Any:
        """Turn a validated value into its runtime form (Path for path fields)."""
        if not self.path:
            return value
        resolved = Path(value).expanduser()
        return resolved if resolved.is_absolute() else base_dir / resolved


def validate_config(
    config: dict[str, Any], schema: dict[str, ConfigField], base_dir: Path | None = None
) -> dict[str, Any]:
    """
    Validate a configuration dictionary against a schema.

    Fields missing from config take their default value.

    Args:
        config: The configuration dictionary to validate
        schema: The schema dictionary (field_name -> ConfigField)
        base_dir: Directory for resolving path fields; when None, path
            fields are returned as plain strings

    Returns:
        Complete configuration (config values merged over defaults)

    Raises:
        ValidationError: If an unknown field is present or a value is invalid
    """
    unknown = sorted(set(config) - set(schema))
    if unknown:
        raise ValidationError(f"Unknown configuration field: {', '.join(unknown)}")

    result = generate_default_config(schema)

    for field_name, value in config.items():
        try:
            schema[field_name].validate(value)
        except ValidationError as e:
            raise ValidationError(f"Field '{field_name}': {e}") from e
        result[field_name] = value

    if base_dir is not None:
        result = {name: schema[name].convert(value, base_dir) for name, value in result.items()}

    return result


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, Any]:
    """Get the default value of every field in a schema."""
    return {field_name: field.default for field_name, field in schema.items()}
