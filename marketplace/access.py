"""Bearer-token gate in front of every mutating endpoint.

Tokens are HS256 JWTs whose `sub` is the user id; an `adm: true` claim marks
an administrator. Expiry is checked
against the injected clock rather than PyJWT's own time source so tests
can step past `exp` deterministically.
"""
import os
from dataclasses import dataclass
from datetime import timedelta

import jwt
from dotenv import load_dotenv

from .clock import Clock, SystemClock
from .errors import InvalidToken, TokenExpired

load_dotenv()

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    user_id: str
    admin: bool = False


class AccessGate:
    def __init__(self, secret: str, clock: Clock = None, issuer: str = "marketplace", ttl: timedelta = timedelta(hours=1)):
        if not secret:
            raise ValueError("token secret must not be empty")
        self.secret = secret
        self.clock = clock or SystemClock()
        self.issuer = issuer
        self.ttl = ttl

    @classmethod
    def from_env(cls, clock: Clock = None) -> "AccessGate":
        secret = os.getenv("TOKEN_SECRET")
        if not secret:
            raise RuntimeError("TOKEN_SECRET not set")
        return cls(
            secret,
            clock=clock,
            issuer=os.getenv("TOKEN_ISSUER", "marketplace"),
            ttl=timedelta(minutes=int(os.getenv("TOKEN_TTL_MINUTES", "60"))),
        )

    def issue(self, user_id: str, admin: bool = False) -> str:
        """Create a token for the identity layer to hand to a signed-in user."""
        now = self.clock.now()
        payload = {
            "iss": self.issuer,
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        if admin:
            payload["adm"] = True
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def validate(self, token: str) -> str:
        """Verify signature, issuer and expiry; return the bidder id."""
        return self.identify(token).user_id

    def identify(self, token: str) -> Identity:
        """Like `validate`, but also report the admin claim."""
        if not token:
            raise InvalidToken("missing token")
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidToken(str(e)) from e

        bidder_id = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(bidder_id, str) or not bidder_id:
            raise InvalidToken("token has no subject")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise InvalidToken("token has a malformed expiry")
        if self.clock.now().timestamp() >= exp:
            raise TokenExpired("token expired")
        return Identity(bidder_id, admin=payload.get("adm") is True)
