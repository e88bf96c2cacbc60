import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Protocol

from passlib.context import CryptContext

from ..ports.appointments_repo import AppointmentDto, AppointmentsRepository
from ...exceptions import TokenExpired, TokenFormatInvalid, TokenMismatch, TokenMissing

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded
TOKEN_BYTES = 32
MIN_TOKEN_LENGTH = 64
DEFAULT_TOKEN_TTL = timedelta(hours=48)
DEFAULT_HASH_ROUNDS = 12


class TokenHasher(Protocol):
    def hash(self, secret: str) -> str:
        ...

    def verify(self, secret: str, hash: str) -> bool:
        ...


def make_token_hasher(rounds: int = DEFAULT_HASH_ROUNDS) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def mask_token(token: str) -> str:
    return f"{token[:6]}…" if token else ""


@dataclass
class TokenService:
    """One-time appointment confirmation tokens.

    Only a bcrypt hash is persisted. The plaintext leaves this service once, in
    the return value of issue(), and is never stored or logged in full.
    """
    repo: AppointmentsRepository
    hasher: TokenHasher = field(default_factory=make_token_hasher)
    ttl: timedelta = DEFAULT_TOKEN_TTL
    clock: Callable[[], datetime] = field(default=datetime.utcnow)

    def issue(self, appointment_id: str) -> str:
        # Always rotate: the previous plaintext cannot be recovered from its hash
        token = secrets.token_hex(TOKEN_BYTES)
        token_hash = self.hasher.hash(token)
        expires_at = self.clock() + self.ttl
        self.repo.set_confirmation_token(appointment_id, token_hash, expires_at)
        logger.info(f"Issued confirmation token {mask_token(token)} for appointment {appointment_id}, expires {expires_at:%Y-%m-%d %H:%M} UTC")
        return token

    def verify(self, appointment: AppointmentDto, presented_token: str) -> None:
        """Raise a TokenVerificationError subclass unless presented_token is valid now."""
        if not presented_token or len(presented_token) < MIN_TOKEN_LENGTH:
            raise TokenFormatInvalid("Invalid confirmation token format")
        if not appointment.confirmation_token_hash:
            raise TokenMissing("No confirmation token found for this appointment")
        if appointment.token_expires_at is None or self.clock() > appointment.token_expires_at:
            raise TokenExpired("Confirmation token has expired")
        try:
            valid = self.hasher.verify(presented_token, appointment.confirmation_token_hash)
        except ValueError:
            # Unparseable stored hash
            valid = False
        if not valid:
            raise TokenMismatch("Confirmation token does not match")

    def invalidate(self, appointment_id: str) -> None:
        self.repo.set_confirmation_token(appointment_id, None, None)
        logger.info(f"Confirmation token invalidated for appointment {appointment_id}")
