from functools import wraps

from flask import abort, redirect, url_for

from ..domain import UserRole
from ..session import current_user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user() is None:
            return redirect(url_for("auth.login"))
        return fn(*args, **kwargs)

    return wrapper


def roles_required(*roles):
    allowed = {UserRole(role) for role in roles}

    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if allowed and current_user().role not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def admin_required(fn):
    return roles_required(UserRole.ADMIN)(fn)
