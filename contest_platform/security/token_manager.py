# contest_platform/security/token_manager.py
from datetime import timedelta

from flask import Flask
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt import ExpiredSignatureError, InvalidTokenError

from contest_platform.errors import TokenExpired, TokenInvalid

# Signed, time-bounded bearer tokens (HS256) via Flask-JWT-Extended.
# Claims: sub = identity id, iat, exp. Nothing is persisted or revoked.


class TokenManager:
    def __init__(self, app: Flask = None):
        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        # No default secret: create_app refuses to start without JWT_SECRET_KEY.
        app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(days=30))
        app.config.setdefault("JWT_ALGORITHM", "HS256")

    def generate_token(self, identity_id, expires_in=None) -> str:
        # Bind a token to the identity id; expires_in overrides the configured lifetime.
        expires_delta = None
        if expires_in is not None:
            expires_delta = expires_in if isinstance(expires_in, timedelta) else timedelta(seconds=expires_in)
        if expires_delta is None:
            return create_access_token(identity=str(identity_id))
        return create_access_token(identity=str(identity_id), expires_delta=expires_delta)

    def verify_token(self, token: str) -> dict:
        # Return the decoded claims, or raise TokenExpired / TokenInvalid.
        if not token or not isinstance(token, str):
            raise TokenInvalid()
        try:
            return decode_token(token, allow_expired=False)
        except ExpiredSignatureError:
            raise TokenExpired()
        except (InvalidTokenError, JWTExtendedException) as e:
            raise TokenInvalid(f"Invalid token: {e.__class__.__name__}")

    def subject_id(self, token: str) -> int:
        claims = self.verify_token(token)
        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            raise TokenInvalid("Token subject is missing or malformed")
