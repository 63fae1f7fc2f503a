"""Parameter coercion helpers shared by the built-in tools."""

from typing import Any, Mapping, Optional


def text_param(params: Mapping[str, Any], code: str) -> str:
    """Return a parameter as trimmed text ("" when absent)."""
    value = params.get(code)
    return "" if value is None else str(value).strip()


def int_param(
    params: Mapping[str, Any],
    code: str,
    default: int,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """
    Read an optional integer parameter, clamped to a range.

    Args:
        params: Parameter mapping
        code: Parameter code
        default: Value used when the parameter is absent
        minimum: Lower bound applied after parsing
        maximum: Upper bound applied after parsing

    Returns:
        Parsed and clamped integer

    Raises:
        ValueError: If the value is present but not an integer
    """
    raw = params.get(code)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    if isinstance(raw, bool):
        raise ValueError(f"{code} must be an integer, got {raw!r}")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError(f"{code} must be an integer, got {raw!r}")
        value = int(raw)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            raise ValueError(f"{code} must be an integer, got {raw!r}")

    if minimum is not None:
        value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value
