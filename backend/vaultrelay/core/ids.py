# vaultrelay/core/ids.py

import itertools
import secrets
import string
import threading
import time

_ALPHABET = string.digits + string.ascii_lowercase
_counter = itertools.count()
_counter_lock = threading.Lock()

# 40 bits from the OS CSPRNG per id
RANDOM_BYTES = 5


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def new_message_id() -> str:
    """
    Time-ordered, URL-safe message id.

    Layout: <ms since epoch, base36>-<process counter, base36>-<random hex>
    The counter makes ids unique within the process even when the clock
    stalls; the random suffix (secrets module) keeps ids unguessable.
    """
    millis = _base36(int(time.time() * 1000))
    with _counter_lock:
        seq = _base36(next(_counter))
    return f"{millis}-{seq}-{secrets.token_hex(RANDOM_BYTES)}"
