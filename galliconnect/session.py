"""Current-user session kept in the signed browser cookie.

The record is read once per request into ``g.user``, written on login and
removed on logout.
"""

from __future__ import annotations

from typing import Optional

from flask import g, session

from .domain import User

SESSION_USER_KEY = 'current_user'


def login_user(user: User) -> None:
    session[SESSION_USER_KEY] = user.public_dict()
    session.permanent = True
    g.user = User.from_dict(session[SESSION_USER_KEY])


def logout_user() -> None:
    session.clear()
    g.user = None


def load_current_user() -> None:
    raw = session.get(SESSION_USER_KEY)
    if not raw:
        g.user = None
        return
    try:
        g.user = User.from_dict(raw)
    except (TypeError, ValueError):
        session.pop(SESSION_USER_KEY, None)
        g.user = None


def current_user() -> Optional[User]:
    return g.get('user')
