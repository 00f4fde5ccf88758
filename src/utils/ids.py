"""Public identifier generation (batch IDs, tracking numbers)."""

import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    """Encode a non-negative integer in lower-case base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    """Cryptographically random base-36 string of the given length."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def time_base36() -> str:
    """Current epoch milliseconds in base 36."""
    return to_base36(time.time_ns() // 1_000_000)


def generate_batch_id() -> str:
    """Batch identifier: BATCH-<base36 ms>-<9 random chars>, upper-cased."""
    return f"BATCH-{time_base36()}-{random_base36(9)}".upper()
