import hashlib
import hmac
import math
import time
from typing import Optional

NONCE_LENGTH = 10


class NonceService:
    """Signed, time-boxed, single-purpose tokens guarding state-changing links.

    A token is valid for the half-lifetime it was issued in and the one
    after it, so its real lifetime is between lifetime/2 and lifetime.
    """

    def __init__(self, secret_key: str, lifetime: int = 86400):
        self.secret_key = secret_key.encode()
        self.lifetime = lifetime

    def tick(self, now: Optional[float] = None) -> int:
        if now is None:
            now = time.time()
        return math.ceil(now / (self.lifetime / 2))

    def _sign(self, tick: int, action: str, user_id: int) -> str:
        digest = hmac.new(
            self.secret_key,
            f"{tick}|{action}|{user_id}".encode(),
            hashlib.sha256
        ).hexdigest()
        return digest[-NONCE_LENGTH:]

    def create(self, action: str, user_id: int, now: Optional[float] = None) -> str:
        return self._sign(self.tick(now), action, user_id)

    def verify(self, token: str, action: str, user_id: int,
               now: Optional[float] = None) -> int:
        """Check a token.

        Returns 1 if it was generated in the current half-lifetime, 2 if in
        the previous one, and 0 if it is invalid or expired.
        """
        if not token:
            return 0

        current = self.tick(now)
        for age, tick in enumerate((current, current - 1), start=1):
            if hmac.compare_digest(self._sign(tick, action, user_id), token):
                return age
        return 0
