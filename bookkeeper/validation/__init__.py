"""Input validation package."""

from bookkeeper.validation.validator import (
    InputValidator,
    InvalidInputError,
    as_decimal,
    is_finite_number,
    whole_quantity,
)

__all__ = [
    "InputValidator",
    "InvalidInputError",
    "as_decimal",
    "is_finite_number",
    "whole_quantity",
]
