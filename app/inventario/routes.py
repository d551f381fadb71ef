from __future__ import annotations

from flask import current_app, g, jsonify, request
from flask_login import login_required

from app.core.models import Rol
from app.core.permissions import require_role
from app.inventario import inventario_bp
from app.inventario.services import (
    create_session,
    dashboard_stats,
    delete_session,
    list_sessions,
    list_verifications,
    session_detail,
    submit_verification,
    transition_session,
    update_session,
)


def _payload() -> dict[str, object]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _page_args() -> tuple[int, int]:
    page = request.args.get("page", 1, type=int) or 1
    page_size = request.args.get("page_size", current_app.config["PAGE_SIZE_DEFAULT"], type=int)
    return page, page_size


@inventario_bp.get("/sesiones")
@login_required
def sessions_list():
    page, page_size = _page_args()
    return jsonify(list_sessions(request.args.to_dict(), page, page_size))


@inventario_bp.post("/sesiones")
@login_required
@require_role(Rol.ADMIN, Rol.JEFE_PATRIMONIO, Rol.RESPONSABLE)
def session_create():
    sesion = create_session(_payload(), g.actor)
    return jsonify(sesion.to_dict()), 201


@inventario_bp.get("/sesiones/<int:sesion_id>")
@login_required
def session_show(sesion_id: int):
    return jsonify(session_detail(sesion_id))


@inventario_bp.patch("/sesiones/<int:sesion_id>")
@login_required
def session_update(sesion_id: int):
    sesion = update_session(sesion_id, _payload(), g.actor)
    return jsonify(sesion.to_dict())


@inventario_bp.delete("/sesiones/<int:sesion_id>")
@login_required
def session_delete(sesion_id: int):
    delete_session(sesion_id, g.actor)
    return jsonify({"ok": True})


@inventario_bp.post("/sesiones/<int:sesion_id>/<accion>")
@login_required
def session_transition(sesion_id: int, accion: str):
    sesion = transition_session(sesion_id, accion, g.actor)
    return jsonify(sesion.to_dict())


@inventario_bp.get("/sesiones/<int:sesion_id>/verificaciones")
@login_required
def verifications_list(sesion_id: int):
    page, page_size = _page_args()
    return jsonify(list_verifications(sesion_id, request.args.to_dict(), page, page_size))


@inventario_bp.post("/sesiones/<int:sesion_id>/verificaciones")
@login_required
def verification_submit(sesion_id: int):
    verificacion = submit_verification(sesion_id, _payload(), g.actor)
    return jsonify(verificacion.to_dict()), 201


@inventario_bp.get("/dashboard")
@login_required
def dashboard():
    return jsonify(dashboard_stats())
