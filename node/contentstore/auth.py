# identity helpers + ownership check
from typing import Optional

from .errors import Forbidden


def normalize_identity(value: Optional[str]) -> str:
    """
    Identities are opaque strings compared case-insensitively,
    so the store keeps them lowercase.
    """
    return (value or "").strip().lower()


def authorize(record, caller: Optional[str]) -> bool:
    """
    True iff caller owns the record (record.author, case-insensitive).
    Never used on reads.
    """
    caller = normalize_identity(caller)
    if not caller:
        return False
    return normalize_identity(record.author) == caller


def require_owner(record, caller: Optional[str], what: str) -> None:
    if not authorize(record, caller):
        raise Forbidden(f"Can only modify own {what}")
