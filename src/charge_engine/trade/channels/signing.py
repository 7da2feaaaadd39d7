"""Parameter signing shared by the platform dialects."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal


def canonical_string(params: dict[str, str], exclude: Iterable[str] = ()) -> str:
    """Join non-empty parameters as sorted ``k=v`` pairs separated by ``&``."""
    skipped = set(exclude)
    return "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in skipped and params[key] not in (None, "")
    )


def sign_params(params: dict[str, str], secret: str, exclude: Iterable[str] = ()) -> str:
    """Compute the HMAC-SHA256 signature of a parameter map."""
    payload = canonical_string(params, exclude).encode()
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_params(
    params: dict[str, str],
    secret: str,
    signature_field: str,
    exclude: Iterable[str] = (),
) -> bool:
    """Check the signature carried in ``signature_field`` in constant time."""
    signature = params.get(signature_field)
    if not signature:
        return False
    expected = sign_params(params, secret, exclude=(signature_field, *exclude))
    return hmac.compare_digest(expected, signature)


def to_major_units(amount: int) -> str:
    """Format minor units as a two-decimal string (1050 -> "10.50")."""
    return str((Decimal(amount) / 100).quantize(Decimal("0.01")))


def to_minor_units(value: str | None) -> int | None:
    """Parse a two-decimal amount string back into minor units."""
    if value in (None, ""):
        return None
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
