from typing import Any, Dict, List

from .database import TargetType
from .normalize import is_http_url

REQUIRED_LEAK_FIELDS = ["target_name", "provider", "leak_text"]
OPTIONAL_LEAK_STR_FIELDS = ["leak_context", "url", "access_notes"]
OPTIONAL_LEAK_BOOL_FIELDS = ["requires_login", "is_paid", "has_tool_prompts"]

REQUIRED_REQUEST_FIELDS = ["target_name", "provider", "target_url"]

TARGET_TYPES = [t.value for t in TargetType]


class ValidationError(Exception):
    """Raised when submitted data fails validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _validate_target_type(data: Dict[str, Any], errors: List[str]) -> None:
    target_type = data.get("target_type")
    if isinstance(target_type, TargetType):
        return
    if target_type not in TARGET_TYPES:
        errors.append(f"Field 'target_type' must be one of: {', '.join(TARGET_TYPES)}")


def validate_leak(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_LEAK_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    _validate_target_type(data, errors)

    for f in OPTIONAL_LEAK_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in OPTIONAL_LEAK_BOOL_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], bool):
            errors.append(f"Field '{f}' must be a boolean if provided")

    known = set(REQUIRED_LEAK_FIELDS) | set(OPTIONAL_LEAK_STR_FIELDS) | set(OPTIONAL_LEAK_BOOL_FIELDS) | {"target_type"}
    for f in sorted(set(data) - known):
        errors.append(f"Unknown field: {f}")

    if _is_non_empty_str(data.get("url")) and not is_http_url(data["url"]):
        errors.append("Invalid URL.")

    return errors


def validate_request(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_REQUEST_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    _validate_target_type(data, errors)

    if _is_non_empty_str(data.get("target_url")) and not is_http_url(data["target_url"]):
        errors.append(
            "The provided target URL is not valid. "
            "Please provide a valid URL starting with http:// or https://"
        )

    return errors
