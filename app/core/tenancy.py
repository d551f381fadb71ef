from __future__ import annotations

from flask import abort, g
from flask_login import current_user

from app.core.permissions import Actor


def load_actor_context() -> None:
    g.actor = None
    if not current_user.is_authenticated:
        return
    if not current_user.is_active:
        abort(403)
    g.actor = Actor.from_user(current_user)
