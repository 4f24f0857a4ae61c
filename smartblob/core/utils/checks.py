from typing import Any, Iterable, TypeVar

T = TypeVar("T")


def ifnone(val: T | None, default: T) -> T:
    """``val`` unless it is None, in which case ``default``. Falsy values are kept."""
    return default if val is None else val


def first_not_none(vals: Iterable, default: Any = None):
    """First element of ``vals`` that is not None, or ``default``."""
    for val in vals:
        if val is not None:
            return val
    return default


def is_url(value: str) -> bool:
    """True for http(s) URLs, which are staged locally before upload."""
    return value.startswith(("http://", "https://"))
