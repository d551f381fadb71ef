from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import abort, g
from flask_login import current_user

from app.core.models import Rol, Usuario


@dataclass(frozen=True)
class Actor:
    """Caller identity passed into every state-changing service call."""

    user_id: int
    dependencia_id: int | None
    rol: Rol = Rol.USUARIO

    @property
    def is_admin(self) -> bool:
        return self.rol == Rol.ADMIN

    @classmethod
    def from_user(cls, user: Usuario) -> "Actor":
        return cls(user_id=user.id, dependencia_id=user.dependencia_id, rol=user.rol)


def require_dependencia(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if getattr(g, "actor", None) is None or g.actor.dependencia_id is None:
            abort(403)
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: Rol | str):
    allowed = {r.value if isinstance(r, Rol) else str(r).upper() for r in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            actor = getattr(g, "actor", None)
            if actor is None:
                abort(403)
            if actor.rol.value not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
