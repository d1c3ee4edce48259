# contest_platform/authentication/rbac.py

import logging
from enum import Enum
from functools import wraps

from flask import current_app, g, request

from contest_platform.errors import Forbidden, Unauthenticated

# Access control guard: resolves the bearer token into an identity and decides,
# before the handler runs, whether that identity may proceed. The policy
# functions never touch persistence; owner ids are handed in by the caller.

logger = logging.getLogger(__name__)


class Capability(Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    OWNER_OR_ADMIN = "owner_or_admin"


class UserRole(Enum):
    MEMBER = "member"
    ADMIN = "admin"


class Permission(Enum):
    CREATE_COMPETITION = "create_competition"
    SUBMIT_ENTRY = "submit_entry"
    CAST_VOTE = "cast_vote"
    MANAGE_ANY_COMPETITION = "manage_any_competition"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    UserRole.MEMBER: [
        Permission.CREATE_COMPETITION,
        Permission.SUBMIT_ENTRY,
        Permission.CAST_VOTE,
    ],
    UserRole.ADMIN: [
        Permission.CREATE_COMPETITION,
        Permission.SUBMIT_ENTRY,
        Permission.CAST_VOTE,
        Permission.MANAGE_ANY_COMPETITION,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        try:
            if isinstance(user_role, str):
                user_role = UserRole(user_role.lower())
            if isinstance(permission, str):
                permission = Permission(permission)
        except ValueError:
            return False
        return permission in ROLE_PERMISSIONS.get(user_role, [])


_rbac = RBACService()


def authorize_owner(identity, owner_id):
    """Owner-or-admin rule: pass silently or raise Forbidden."""
    if identity is None:
        raise Unauthenticated()
    if identity.id == owner_id:
        return
    if _rbac.has_permission(identity.role, Permission.MANAGE_ANY_COMPETITION):
        return
    logger.info("Identity %s denied access to resource owned by %s", identity.id, owner_id)
    raise Forbidden()


def bearer_token(header_value):
    """Extract the token from an 'Authorization: Bearer <token>' header value."""
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1]


def _services():
    return current_app.extensions['contest_platform']


# Decorator for authenticated routes
def require_auth(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        token = bearer_token(request.headers.get('Authorization'))
        if not token:
            raise Unauthenticated("Not authorized to access this route")
        g.identity = _services().credentials.verify_token(token)
        return func(*args, **kwargs)
    return wrapper


# Decorator for required permission (implies authentication)
def require_permission(permission):
    def decorator(func):
        @wraps(func)
        @require_auth
        def wrapper(*args, **kwargs):
            identity = g.identity
            if not _rbac.has_permission(identity.role, permission):
                services = _services()
                services.audit.log_security_event(
                    'access_denied', {'permission': permission.value, 'path': request.path},
                    user_id=identity.id)
                raise Forbidden()
            return func(*args, **kwargs)
        return wrapper
    return decorator


CAPABILITY_ATTR = "__capability__"


def guarded(level, permission=None):
    """Attach a capability level to a view and enforce its authentication part.

    OWNER_OR_ADMIN views are authenticated here; the ownership decision needs
    the target record and is made by the service through authorize_owner.
    """
    def decorator(func):
        if level is Capability.PUBLIC:
            wrapped = func
        elif permission is not None:
            wrapped = require_permission(permission)(func)
        else:
            wrapped = require_auth(func)
        setattr(wrapped, CAPABILITY_ATTR, level)
        return wrapped
    return decorator


def endpoint_capability(view):
    return getattr(view, CAPABILITY_ATTR, Capability.PUBLIC)
