"""
Constant-time check of a presented credential against the instance secret.

Every call performs exactly one constant-time comparison, whatever the input:
- same length: presented vs secret
- different length: presented vs a zero buffer of presented's own length
- undecodable input: two secret-length dummy buffers
so "wrong length", "wrong content" and "garbage" are not distinguishable by
how much work was done.
"""

import hmac
from typing import Callable, Optional, Union

Presented = Optional[Union[str, bytes, bytearray]]


class SecretComparator:

    def __init__(self, secret: str, compare: Callable[[bytes, bytes], bool] = hmac.compare_digest):
        self._secret = secret.encode('utf-8')
        self._compare = compare

    def isValid(self, presented: Presented) -> bool:
        """True iff presented is byte-equal to the secret. Never raises."""
        try:
            candidate = self._toBytes(presented)
        except (UnicodeError, TypeError):
            dummy = bytes(len(self._secret))
            self._compare(dummy, dummy)
            return False

        if len(candidate) != len(self._secret):
            self._compare(candidate, bytes(len(candidate)))
            return False

        return self._compare(candidate, self._secret)

    @staticmethod
    def _toBytes(presented: Presented) -> bytes:
        if isinstance(presented, str):
            return presented.encode('utf-8')
        if isinstance(presented, (bytes, bytearray)):
            return bytes(presented)
        raise TypeError(f"Unsupported credential type: {type(presented).__name__}")
