# contest_platform/config.py

import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Optional

from contest_platform.errors import ConfigurationError

# Process-wide settings, read once from the environment at start-up.
# There is no fallback signing secret: a missing JWT_SECRET_KEY stops the app.

_DURATION_RE = re.compile(r'^\s*(\d+)\s*([smhd]?)\s*$')
_DURATION_UNITS = {'': 1, 's': 1, 'm': 60, 'h': 3600, 'd': 86400}
_TRUTHY = {'1', 'true', 'yes', 'on'}


def parse_duration(value) -> timedelta:
    """Parse '30d', '12h', '15m', '45s' or a bare number of seconds."""
    if isinstance(value, timedelta):
        return value
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return timedelta(seconds=seconds)


def _env_bool(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    jwt_secret_key: str
    jwt_access_token_expires: timedelta = timedelta(days=30)
    database_url: str = 'sqlite:///contest_platform.db'
    environment: str = 'production'
    api_prefix: str = ''
    db_pool_timeout: int = 10
    db_statement_timeout_ms: int = 5000
    ratelimit_enabled: bool = True
    ratelimit_storage_uri: str = 'memory://'
    ratelimit_default: str = '10000/hour'
    login_rate_limit: str = '20/minute'
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 4
    audit_log_enabled: bool = True
    audit_log_dir: str = 'logs'
    audit_signing_key_path: Optional[str] = None
    log_level: str = 'INFO'
    auto_create_schema: bool = True
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.jwt_secret_key or not self.jwt_secret_key.strip():
            raise ConfigurationError(
                "JWT_SECRET_KEY is not configured; refusing to start without a signing secret"
            )
        if self.api_prefix and not self.api_prefix.startswith('/'):
            raise ConfigurationError("API_PREFIX must start with '/'")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == 'development'

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            jwt_secret_key=environ.get('JWT_SECRET_KEY', ''),
            jwt_access_token_expires=parse_duration(environ.get('JWT_EXPIRE') or '30d'),
            database_url=environ.get('DATABASE_URL') or cls.database_url,
            environment=environ.get('APP_ENV') or cls.environment,
            api_prefix=(environ.get('API_PREFIX') or '').rstrip('/'),
            db_pool_timeout=_env_int(environ, 'DB_POOL_TIMEOUT', cls.db_pool_timeout),
            db_statement_timeout_ms=_env_int(environ, 'DB_STATEMENT_TIMEOUT_MS', cls.db_statement_timeout_ms),
            ratelimit_enabled=_env_bool(environ, 'RATELIMIT_ENABLED', True),
            ratelimit_storage_uri=environ.get('RATELIMIT_STORAGE_URI') or cls.ratelimit_storage_uri,
            ratelimit_default=environ.get('RATELIMIT_DEFAULT') or cls.ratelimit_default,
            login_rate_limit=environ.get('LOGIN_RATE_LIMIT') or cls.login_rate_limit,
            argon2_time_cost=_env_int(environ, 'ARGON2_TIME_COST', cls.argon2_time_cost),
            argon2_memory_cost=_env_int(environ, 'ARGON2_MEMORY_COST', cls.argon2_memory_cost),
            argon2_parallelism=_env_int(environ, 'ARGON2_PARALLELISM', cls.argon2_parallelism),
            audit_log_enabled=_env_bool(environ, 'AUDIT_LOG_ENABLED', True),
            audit_log_dir=environ.get('AUDIT_LOG_DIR') or cls.audit_log_dir,
            audit_signing_key_path=environ.get('AUDIT_SIGNING_KEY_PATH') or None,
            log_level=(environ.get('LOG_LEVEL') or cls.log_level).upper(),
            auto_create_schema=_env_bool(environ, 'AUTO_CREATE_SCHEMA', True),
        )

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)

    def engine_options(self) -> dict:
        # Bound every wait on the database so a stuck store surfaces as a 500.
        if self.database_url.startswith('sqlite'):
            return {
                'connect_args': {
                    'timeout': max(self.db_statement_timeout_ms / 1000.0, 0.1),
                    'check_same_thread': False,
                },
            }
        options = {'pool_timeout': self.db_pool_timeout, 'pool_pre_ping': True}
        if self.database_url.startswith('postgresql'):
            options['connect_args'] = {
                'options': f'-c statement_timeout={self.db_statement_timeout_ms}',
            }
        return options

    def to_flask_config(self) -> dict:
        config = {
            'SECRET_KEY': self.jwt_secret_key,
            'JWT_SECRET_KEY': self.jwt_secret_key,
            'JWT_ALGORITHM': 'HS256',
            'JWT_ACCESS_TOKEN_EXPIRES': self.jwt_access_token_expires,
            'JWT_TOKEN_LOCATION': ['headers'],
            'JWT_HEADER_TYPE': 'Bearer',
            'SQLALCHEMY_DATABASE_URI': self.database_url,
            'SQLALCHEMY_ENGINE_OPTIONS': self.engine_options(),
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'RATELIMIT_ENABLED': self.ratelimit_enabled,
            'RATELIMIT_STORAGE_URI': self.ratelimit_storage_uri,
            'RATELIMIT_DEFAULT': self.ratelimit_default,
            'RATELIMIT_HEADERS_ENABLED': True,
            'LOGIN_RATE_LIMIT': self.login_rate_limit,
        }
        config.update(self.extra)
        return config
