from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from projectport.constants.roles import Role
from projectport.services.policy import current_permissions, has_role


def require_roles(*roles: Role):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_role(current_permissions(), roles):
                abort(403, description='Missing role')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_staff(fn):
    return require_roles(Role.ADMIN, Role.SUPPORT)(fn)
