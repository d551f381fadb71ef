from __future__ import annotations

from flask import g, jsonify, request
from flask_login import login_required

from app.core.permissions import require_dependencia
from app.tramite import tramite_bp
from app.tramite.services import (
    archive_document,
    attend_document,
    create_document,
    delete_draft_document,
    derive_document,
    document_detail,
    document_history,
    list_dependency_users,
    list_document_types,
    list_inbox,
    list_notifications,
    list_outbox,
    mark_notification_read,
    observe_document,
    pending_count,
    receive_document,
    send_draft_document,
    sign_document,
    update_draft_document,
)


def _payload() -> dict[str, object]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


@tramite_bp.get("/tipos-documento")
@login_required
def document_types():
    return jsonify([tipo.to_dict() for tipo in list_document_types()])


@tramite_bp.get("/dependencias/<int:dependencia_id>/usuarios")
@login_required
def dependency_users(dependencia_id: int):
    return jsonify([user.to_dict() for user in list_dependency_users(dependencia_id)])


@tramite_bp.post("/documentos")
@login_required
@require_dependencia
def document_create():
    documento = create_document(_payload(), g.actor)
    return jsonify(documento.to_dict()), 201


@tramite_bp.get("/documentos/<int:documento_id>")
@login_required
@require_dependencia
def document_show(documento_id: int):
    documento = document_detail(documento_id, g.actor)
    return jsonify(documento.to_dict(include_historial=True))


@tramite_bp.patch("/documentos/<int:documento_id>")
@login_required
@require_dependencia
def document_update(documento_id: int):
    documento = update_draft_document(documento_id, _payload(), g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.delete("/documentos/<int:documento_id>")
@login_required
@require_dependencia
def document_delete(documento_id: int):
    delete_draft_document(documento_id, g.actor)
    return jsonify({"ok": True})


@tramite_bp.post("/documentos/<int:documento_id>/enviar")
@login_required
@require_dependencia
def document_send(documento_id: int):
    documento = send_draft_document(documento_id, _payload(), g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.get("/documentos/<int:documento_id>/historial")
@login_required
@require_dependencia
def document_history_list(documento_id: int):
    return jsonify([entry.to_dict() for entry in document_history(documento_id, g.actor)])


@tramite_bp.post("/documentos/<int:documento_id>/derivar")
@login_required
@require_dependencia
def document_derive(documento_id: int):
    destino = derive_document(documento_id, _payload(), g.actor)
    return jsonify(destino.to_dict()), 201


@tramite_bp.post("/documentos/<int:documento_id>/destinos/<int:destino_id>/recibir")
@login_required
@require_dependencia
def document_receive(documento_id: int, destino_id: int):
    destino = receive_document(documento_id, destino_id, g.actor)
    return jsonify({"destino": destino.to_dict(), "estado_documento": destino.documento.estado.value})


@tramite_bp.post("/documentos/<int:documento_id>/observar")
@login_required
@require_dependencia
def document_observe(documento_id: int):
    documento = observe_document(documento_id, str(_payload().get("descripcion") or ""), g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.post("/documentos/<int:documento_id>/atender")
@login_required
@require_dependencia
def document_attend(documento_id: int):
    documento = attend_document(documento_id, str(_payload().get("descripcion") or ""), g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.post("/documentos/<int:documento_id>/archivar")
@login_required
@require_dependencia
def document_archive(documento_id: int):
    documento = archive_document(documento_id, str(_payload().get("descripcion") or ""), g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.post("/documentos/<int:documento_id>/firmar")
@login_required
@require_dependencia
def document_sign(documento_id: int):
    documento = sign_document(documento_id, g.actor)
    return jsonify(documento.to_dict())


@tramite_bp.get("/bandeja/entrada")
@login_required
@require_dependencia
def inbox():
    return jsonify(list_inbox(g.actor, request.args.to_dict()))


@tramite_bp.get("/bandeja/salida")
@login_required
@require_dependencia
def outbox():
    return jsonify([documento.to_dict() for documento in list_outbox(g.actor, request.args.to_dict())])


@tramite_bp.get("/bandeja/pendientes")
@login_required
@require_dependencia
def inbox_pending_count():
    return jsonify({"dependencia_id": g.actor.dependencia_id, "pendientes": pending_count(g.actor.dependencia_id)})


@tramite_bp.get("/notificaciones")
@login_required
def notifications():
    solo_no_leidas = request.args.get("no_leidas", "").strip().lower() in {"1", "true", "si"}
    return jsonify([n.to_dict() for n in list_notifications(g.actor, solo_no_leidas=solo_no_leidas)])


@tramite_bp.post("/notificaciones/<int:notificacion_id>/leer")
@login_required
def notification_read(notificacion_id: int):
    return jsonify(mark_notification_read(notificacion_id, g.actor).to_dict())
