# contest_platform/authentication/credentials.py
"""Credential service: registration, login and bearer-token resolution.

Registration is atomic from the caller's point of view: if a token cannot be
minted for a freshly stored identity, the identity is deleted again and
AuthSetupError is raised. Login failures are reported with one uniform
InvalidCredentials error whether the email or the password was wrong.
"""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from contest_platform.database.models import User
from contest_platform.errors import (
    AuthSetupError,
    DuplicateIdentity,
    InvalidCredentials,
    ServerError,
    TokenInvalid,
)

logger = logging.getLogger(__name__)


class CredentialService:
    def __init__(self, identities, password_service, token_manager, validator, audit_logger):
        self.identities = identities
        self.passwords = password_service
        self.tokens = token_manager
        self.validator = validator
        self.audit = audit_logger
        self._dummy_hash = None

    def register(self, username, email, password):
        """Create an identity and a token bound to it. Returns (user, token)."""
        data = self.validator.validate_registration(
            {'username': username, 'email': email, 'password': password})

        existing = self.identities.find_one(
            or_(User.email == data['email'], User.username == data['username']))
        if existing:
            raise DuplicateIdentity()

        password_hash = self.passwords.hash_password(data['password'])
        try:
            user = self.identities.create(
                username=data['username'],
                email=data['email'],
                password_hash=password_hash,
                role='member',
            )
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name/email.
            raise DuplicateIdentity()

        try:
            token = self.tokens.generate_token(user.id)
        except Exception as e:
            user_id = user.id
            logger.error("Token generation failed for new user %s, rolling back: %s", user_id, e)
            try:
                self.identities.delete(user)
            except ServerError as rollback_error:
                logger.critical("Rollback of user %s failed, identity left without a token: %s",
                                user_id, rollback_error)
                self.audit.log_security_event(
                    'registration_rollback_failed', {'reason': str(rollback_error)}, user_id=user_id)
            else:
                self.audit.log_security_event('registration_rolled_back', {'reason': str(e)}, user_id=user_id)
            raise AuthSetupError() from e

        self.audit.log_security_event('identity_registered', {'username': user.username}, user_id=user.id)
        logger.info("Registered user %s", user.id)
        return user, token

    def login(self, email, password):
        """Verify email and password. Returns (user, token)."""
        data = self.validator.validate_login({'email': email, 'password': password})
        user = self.identities.find_one(User.email == data['email'])

        if user is None:
            # Spend the same hashing time as a real check.
            self.passwords.verify_password(data['password'], self._placeholder_hash())
            self._login_failed(data['email'])
        if not self.passwords.verify_password(data['password'], user.password_hash):
            self._login_failed(data['email'], user.id)

        if self.passwords.needs_rehash(user.password_hash):
            self.identities.update(user, password_hash=self.passwords.hash_password(data['password']))

        try:
            token = self.tokens.generate_token(user.id)
        except Exception as e:
            logger.error("Token generation failed for user %s: %s", user.id, e)
            raise AuthSetupError("Authentication failed") from e

        self.audit.log_security_event('login_succeeded', {}, user_id=user.id)
        return user, token

    def verify_token(self, token):
        """Resolve a bearer token to the identity it was issued for."""
        subject_id = self.tokens.subject_id(token)
        user = self.identities.find_by_id(subject_id)
        if user is None:
            raise TokenInvalid("Token subject no longer exists")
        return user

    def promote(self, user, role):
        return self.identities.update(user, role=role)

    def _login_failed(self, email, user_id=None):
        self.audit.log_security_event('login_failed', {'email': email}, user_id=user_id)
        raise InvalidCredentials()

    def _placeholder_hash(self):
        if self._dummy_hash is None:
            self._dummy_hash = self.passwords.hash_password('placeholder-password')
        return self._dummy_hash
