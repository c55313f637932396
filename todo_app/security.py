from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError
from passlib.context import CryptContext

from . import errors


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """Argon2 password hashing through passlib.

    Hash records are self-describing (``$argon2id$v=19$m=...,t=...,p=...$salt$digest``),
    so cost parameters can change without invalidating stored hashes.
    """

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4):
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__rounds=time_cost,
            argon2__memory_cost=memory_cost,
            argon2__parallelism=parallelism,
        )
        self._dummy_record: Optional[str] = None

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def dummy_verify(self, password: str) -> None:
        """Spend the same work as a real verify, for logins with an unknown email."""
        if self._dummy_record is None:
            self._dummy_record = self._context.hash("unknown-user-placeholder")
        self._context.verify(password, self._dummy_record)

    def verify(self, password: str, record: str) -> bool:
        try:
            return self._context.verify(password, record)
        except (ValueError, TypeError) as exc:
            raise errors.IntegrityError("Stored password hash is unreadable") from exc

    def verify_and_update(self, password: str, record: str) -> Tuple[bool, Optional[str]]:
        """Verify, and return a fresh record when the stored one uses stale parameters."""
        try:
            return self._context.verify_and_update(password, record)
        except (ValueError, TypeError) as exc:
            raise errors.IntegrityError("Stored password hash is unreadable") from exc

    def needs_rehash(self, record: str) -> bool:
        try:
            return self._context.needs_update(record)
        except (ValueError, TypeError) as exc:
            raise errors.IntegrityError("Stored password hash is unreadable") from exc


class TokenService:
    """Issues and validates signed, stateless session tokens (JWT).

    Tokens carry ``sub`` (user id), ``iat`` and ``exp``. Nothing is stored
    server-side, so a token stays valid until it expires even after logout.
    """

    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        algorithm: str = "HS256",
        clock: Clock = utcnow,
    ):
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self.ttl = ttl

    def __repr__(self) -> str:
        return f"TokenService(algorithm={self._algorithm!r}, ttl={self.ttl!r})"

    def issue(self, user_id: str) -> str:
        now = self._clock()
        claims = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> str:
        """Return the user id carried by ``token`` or raise a ``TokenError``."""
        if not token or not isinstance(token, str):
            raise errors.TokenMalformedError("Token is empty")

        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise errors.TokenMalformedError("Token could not be decoded") from exc

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                # Expiry is checked below against our own clock.
                options={"verify_exp": False},
            )
        except JWTClaimsError as exc:
            raise errors.TokenMalformedError("Token claims are invalid") from exc
        except JWTError as exc:
            raise errors.TokenSignatureError("Token signature is invalid") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise errors.TokenMalformedError("Token subject is missing")
        for name in ("iat", "exp"):
            value = claims.get(name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise errors.TokenMalformedError(f"Token claim {name!r} is not a timestamp")

        expires_at = claims["exp"]
        if self._clock().timestamp() >= expires_at:
            raise errors.TokenExpiredError("Token has expired")
        return subject
