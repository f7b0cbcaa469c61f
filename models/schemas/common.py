from datetime import datetime, timezone

from marshmallow import ValidationError, validate

MIN_BIRTH_YEAR = 1900
MIN_AGE = 13

# 8-128 chars, at least one lowercase, one uppercase and one digit
PASSWORD_RULES = [
    validate.Length(min=8, max=128, error="Password must be between 8 and 128 characters."),
    validate.Regexp(
        r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)",
        error="Password must contain at least one lowercase letter, one uppercase letter, and one number.",
    ),
]


def norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def max_birth_year() -> int:
    return datetime.now(timezone.utc).year - MIN_AGE


def validate_birth_year(value: int) -> None:
    if value < MIN_BIRTH_YEAR or value > max_birth_year():
        raise ValidationError(f"Birth year must be between {MIN_BIRTH_YEAR} and {max_birth_year()}.")
