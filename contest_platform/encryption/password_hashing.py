# contest_platform/encryption/password_hashing.py

import logging

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

# Password hashing and verification using Argon2id

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class PasswordHashingService:
    def __init__(self, time_cost=3, memory_cost=65536, parallelism=4):
        self.ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    @classmethod
    def from_settings(cls, settings):
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def hash_password(self, password: str) -> str:
        if not self.is_acceptable_password(password):
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        try:
            return self.ph.hash(password)
        except HashingError as e:
            raise ValueError(f"Password hashing failed: {str(e)}")

    def verify_password(self, password: str, hash_value: str) -> bool:
        try:
            return self.ph.verify(hash_value, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError) as e:
            logger.warning("Stored password hash could not be verified: %s", e)
            return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def is_acceptable_password(self, password) -> bool:
        return isinstance(password, str) and len(password) >= MIN_PASSWORD_LENGTH
