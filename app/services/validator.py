"""
Input checks for chat requests. Runs before anything else in the pipeline.
Disallowed content is reported as an error, never silently stripped;
sanitize() output is the only text that goes downstream.
"""
import re
from dataclasses import dataclass, field
from typing import Any

from app.config import get_settings

# (rule name, pattern) - a match means the message is rejected
DISALLOWED_PATTERNS = [
    ("noScripts", re.compile(r"<script|javascript:|data:", re.I)),
    ("noSQLInjection", re.compile(r"'|\"|;|--|\b(?:SELECT|INSERT|UPDATE|DELETE|DROP|UNION)\b", re.I)),
]

_ANGLE_BRACKETS = re.compile(r"[<>]")


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate(data: Any, max_length: int | None = None) -> ValidationResult:
    """Check a parsed request body. Returns every problem found, not just the first."""
    settings = get_settings()
    max_length = max_length or settings.max_message_length
    errors: list[str] = []

    if not isinstance(data, dict):
        return ValidationResult(valid=False, errors=["Request body must be a JSON object"])

    message = data.get("message")
    if not message:
        errors.append("Message is required")
    elif not isinstance(message, str):
        errors.append("Message must be a string")
    else:
        if not _ANGLE_BRACKETS.sub("", message).strip():
            errors.append("Message is too short")
        if len(message) > max_length:
            errors.append(f"Message exceeds {max_length} characters")
        for name, pattern in DISALLOWED_PATTERNS:
            if pattern.search(message):
                errors.append(f"Message contains invalid content ({name})")

    user_id = data.get("userId")
    if user_id is not None:
        if not isinstance(user_id, str):
            errors.append("userId must be a string")
        elif len(user_id) > settings.max_user_id_length:
            errors.append(f"userId exceeds {settings.max_user_id_length} characters")

    return ValidationResult(valid=not errors, errors=errors)


def sanitize(message: str, max_length: int | None = None) -> str:
    """Trim, drop angle brackets, truncate."""
    max_length = max_length or get_settings().max_message_length
    return _ANGLE_BRACKETS.sub("", message.strip())[:max_length]
