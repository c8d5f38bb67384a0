import secrets
from datetime import datetime, timezone

# No 0/O or 1/I so numbers can be read out over the phone.
_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_SUFFIX_LENGTH = 10


def generate_order_number(now: datetime | None = None) -> str:
    """
    Human-readable order number: ``ORD-YYYYMMDD-XXXXXXXXXX``.

    The suffix is 10 characters from a 32-symbol alphabet drawn with
    ``secrets`` (50 bits per day). The unique constraint on
    ``orders.order_number`` is still the final arbiter.
    """
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"ORD-{now:%Y%m%d}-{suffix}"
