from __future__ import annotations

import pytest
from sqlalchemy import update

from app.core.errors import AuthorizationError, DuplicateError, NotFoundError, StateConflictError, ValidationError
from app.core.extensions import db
from app.core.models import (
    AccionHistorial,
    DocumentoDestino,
    DocumentoHistorial,
    DocumentoTramite,
    EstadoDocumento,
    EstadoRecepcion,
    Notificacion,
    TipoNotificacion,
    Usuario,
    utcnow,
)
from app.tramite.services import (
    archive_document,
    attend_document,
    create_document,
    delete_draft_document,
    derive_document,
    document_detail,
    estado_desde_historial,
    history_is_consistent,
    list_inbox,
    list_notifications,
    mark_notification_read,
    observe_document,
    pending_count,
    receive_document,
    send_draft_document,
    sign_document,
    update_draft_document,
)


class _NoMatchQuery:
    def filter_by(self, **kwargs):
        return self

    def first(self):
        return None


def _user_id(email: str) -> int:
    return Usuario.query.filter_by(email=email).first().id


def _payload(tipos, deps, **overrides) -> dict[str, object]:
    payload: dict[str, object] = {
        "tipo_documento_id": tipos["OF"],
        "correlativo": "001",
        "anio": 2024,
        "asunto": "Test",
        "archivo": {"url": "/uploads/of-001-2024.pdf", "nombre": "of-001-2024.pdf"},
        "destinatarios": [{"dependencia_id": deps["OTI"], "es_copia": False}],
        "enviar": True,
    }
    payload.update(overrides)
    return payload


def _first_destino(documento_id: int, siglas_id: int) -> DocumentoDestino:
    return DocumentoDestino.query.filter_by(documento_id=documento_id, dependencia_destino_id=siglas_id).first()


def _destino_rows() -> list[tuple]:
    return [
        (d.id, d.dependencia_destino_id, d.estado_recepcion, d.receptor_id)
        for d in DocumentoDestino.query.order_by(DocumentoDestino.id.asc()).all()
    ]


def test_happy_path_create_send_and_receive(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        assert documento.estado == EstadoDocumento.ENVIADO
        assert documento.codigo == "OF 001-2024"
        assert len(documento.destinos) == 1
        assert documento.destinos[0].estado_recepcion == EstadoRecepcion.PENDIENTE
        assert [h.accion for h in documento.historial] == [AccionHistorial.CREADO, AccionHistorial.ENVIADO]
        assert documento.historial[0].estado_anterior is None
        assert documento.historial[1].estado_anterior == EstadoDocumento.BORRADOR
        assert documento.fecha_envio is not None

        destino = receive_document(documento.id, documento.destinos[0].id, actors["oti"])
        assert destino.estado_recepcion == EstadoRecepcion.RECIBIDO
        assert destino.receptor_id == actors["oti"].user_id
        assert destino.fecha_recepcion is not None

        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.RECIBIDO
        assert len(documento.historial) == 3
        assert documento.historial[-1].accion == AccionHistorial.RECIBIDO
        assert documento.historial[-1].estado_anterior == EstadoDocumento.ENVIADO
        assert history_is_consistent(documento)


def test_create_requires_metadata_and_attachment(app, actors, deps, tipos):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, correlativo=""), actors["rectorado"])
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, asunto="  "), actors["rectorado"])
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, archivo=None), actors["rectorado"])
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, archivo={"nombre": "sin-url.pdf"}), actors["rectorado"])
        assert DocumentoTramite.query.count() == 0
        assert DocumentoHistorial.query.count() == 0


def test_send_immediately_requires_principal_recipient(app, actors, deps, tipos):
    with app.app_context():
        only_copy = [{"dependencia_id": deps["FI"], "es_copia": True}]
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, destinatarios=only_copy), actors["rectorado"])
        with pytest.raises(ValidationError):
            create_document(_payload(tipos, deps, destinatarios=[]), actors["rectorado"])
        assert DocumentoTramite.query.count() == 0


def test_create_rejects_unknown_recipient_dependency(app, actors, deps, tipos):
    with app.app_context():
        with pytest.raises(NotFoundError):
            create_document(
                _payload(tipos, deps, destinatarios=[{"dependencia_id": 9999}]),
                actors["rectorado"],
            )


def test_duplicate_correlative_per_type_and_year(app, actors, deps, tipos):
    with app.app_context():
        create_document(_payload(tipos, deps), actors["rectorado"])
        with pytest.raises(DuplicateError):
            create_document(_payload(tipos, deps), actors["fi"])

        # Same correlative is fine for another year or another type.
        create_document(_payload(tipos, deps, anio=2025), actors["rectorado"])
        create_document(
            _payload(tipos, deps, tipo_documento_id=tipos["MEM"], destinatarios=[{"dependencia_id": deps["FI"]}]),
            actors["rectorado"],
        )
        assert DocumentoTramite.query.count() == 3


def test_draft_can_be_empty_and_is_excluded_from_inbox(app, actors, deps, tipos):
    with app.app_context():
        borrador = create_document(_payload(tipos, deps, enviar=False, destinatarios=[]), actors["rectorado"])
        assert borrador.estado == EstadoDocumento.BORRADOR
        assert borrador.destinos == []
        assert [h.accion for h in borrador.historial] == [AccionHistorial.CREADO]

        con_destino = create_document(
            _payload(tipos, deps, correlativo="002", enviar=False),
            actors["rectorado"],
        )
        assert con_destino.estado == EstadoDocumento.BORRADOR
        assert list_inbox(actors["oti"], {}) == []
        assert pending_count(deps["OTI"]) == 0

        with pytest.raises(StateConflictError):
            receive_document(con_destino.id, con_destino.destinos[0].id, actors["oti"])


def test_update_and_send_draft(app, actors, deps, tipos):
    with app.app_context():
        borrador = create_document(_payload(tipos, deps, enviar=False, destinatarios=[]), actors["rectorado"])

        with pytest.raises(AuthorizationError):
            update_draft_document(borrador.id, {"asunto": "Otro"}, actors["oti"])

        actualizado = update_draft_document(borrador.id, {"asunto": "Nuevo asunto", "prioridad": "alta"}, actors["rectorado"])
        assert actualizado.asunto == "Nuevo asunto"
        assert actualizado.prioridad.value == "ALTA"

        with pytest.raises(ValidationError):
            send_draft_document(borrador.id, {}, actors["rectorado"])

        enviado = send_draft_document(
            borrador.id,
            {"destinatarios": [{"dependencia_id": deps["FI"]}, {"dependencia_id": deps["OTI"], "es_copia": True}]},
            actors["rectorado"],
        )
        assert enviado.estado == EstadoDocumento.ENVIADO
        assert [h.accion for h in enviado.historial] == [AccionHistorial.CREADO, AccionHistorial.ENVIADO]

        with pytest.raises(StateConflictError):
            update_draft_document(borrador.id, {"asunto": "Tarde"}, actors["rectorado"])


def test_delete_only_draft_by_creator_or_admin(app, actors, deps, tipos):
    with app.app_context():
        borrador = create_document(_payload(tipos, deps, enviar=False), actors["rectorado"])
        enviado = create_document(_payload(tipos, deps, correlativo="002"), actors["rectorado"])

        with pytest.raises(AuthorizationError):
            delete_draft_document(borrador.id, actors["fi"])
        with pytest.raises(StateConflictError):
            delete_draft_document(enviado.id, actors["rectorado"])
        # Authorization is reported even when the state would also reject.
        with pytest.raises(AuthorizationError):
            delete_draft_document(enviado.id, actors["fi"])

        borrador_id = borrador.id
        delete_draft_document(borrador_id, actors["admin"])
        assert db.session.get(DocumentoTramite, borrador_id) is None
        assert DocumentoHistorial.query.filter_by(documento_id=borrador_id).count() == 0
        assert db.session.get(DocumentoTramite, enviado.id) is not None

        with pytest.raises(NotFoundError):
            delete_draft_document(borrador_id, actors["rectorado"])


def test_receive_authorization_precedes_state(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        destino_id = documento.destinos[0].id
        receive_document(documento.id, destino_id, actors["oti"])

        # Wrong dependency AND already received: authorization wins.
        with pytest.raises(AuthorizationError):
            receive_document(documento.id, destino_id, actors["fi"])
        with pytest.raises(StateConflictError):
            receive_document(documento.id, destino_id, actors["oti"])

        documento = db.session.get(DocumentoTramite, documento.id)
        assert len(documento.historial) == 3


def test_receive_rejects_destination_of_another_document(app, actors, deps, tipos):
    with app.app_context():
        primero = create_document(_payload(tipos, deps), actors["rectorado"])
        segundo = create_document(_payload(tipos, deps, correlativo="002"), actors["rectorado"])
        with pytest.raises(NotFoundError):
            receive_document(primero.id, segundo.destinos[0].id, actors["oti"])


def test_copy_destinations_do_not_gate_principal_state(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(
            _payload(
                tipos,
                deps,
                destinatarios=[
                    {"dependencia_id": deps["OTI"]},
                    {"dependencia_id": deps["FI"], "es_copia": True},
                ],
            ),
            actors["rectorado"],
        )
        assert pending_count(deps["OTI"]) == 1
        assert pending_count(deps["FI"]) == 0
        assert documento.pendiente is True

        copia = _first_destino(documento.id, deps["FI"])
        receive_document(documento.id, copia.id, actors["fi"])
        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.ENVIADO
        assert documento.historial[-1].accion == AccionHistorial.RECIBIDO
        assert documento.historial[-1].estado_nuevo == EstadoDocumento.ENVIADO

        principal = _first_destino(documento.id, deps["OTI"])
        receive_document(documento.id, principal.id, actors["oti"])
        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.RECIBIDO
        assert documento.pendiente is False
        assert pending_count(deps["OTI"]) == 0


def test_multiple_principals_all_must_receive(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(
            _payload(tipos, deps, destinatarios=[{"dependencia_id": deps["OTI"]}, {"dependencia_id": deps["FI"]}]),
            actors["rectorado"],
        )
        receive_document(documento.id, _first_destino(documento.id, deps["OTI"]).id, actors["oti"])
        assert db.session.get(DocumentoTramite, documento.id).estado == EstadoDocumento.ENVIADO

        receive_document(documento.id, _first_destino(documento.id, deps["FI"]).id, actors["fi"])
        assert db.session.get(DocumentoTramite, documento.id).estado == EstadoDocumento.RECIBIDO


def test_derive_appends_destination_without_touching_prior_rows(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        origen = documento.destinos[0]
        receive_document(documento.id, origen.id, actors["oti"])
        before = _destino_rows()

        fi_user = _user_id("fi@unamad.edu.pe")
        nuevo = derive_document(
            documento.id,
            {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user, "observaciones": "Para su atencion"},
            actors["oti"],
        )
        assert nuevo.estado_recepcion == EstadoRecepcion.PENDIENTE
        assert nuevo.derivado_desde_id == origen.id

        after = _destino_rows()
        assert len(after) == len(before) + 1
        assert after[: len(before)] == before

        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.DERIVADO
        ultimo = documento.historial[-1]
        assert ultimo.accion == AccionHistorial.DERIVADO
        assert ultimo.estado_anterior == EstadoDocumento.RECIBIDO
        assert ultimo.estado_nuevo == EstadoDocumento.DERIVADO
        assert ultimo.descripcion == "Para su atencion"

        # Next hop receives: DERIVADO re-enters RECIBIDO.
        receive_document(documento.id, nuevo.id, actors["fi"])
        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.RECIBIDO
        assert history_is_consistent(documento)


def test_derive_rules(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        fi_user = _user_id("fi@unamad.edu.pe")
        oti_user = _user_id("oti@unamad.edu.pe")
        target = {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user}

        # Origin dependency does not hold the document.
        with pytest.raises(AuthorizationError):
            derive_document(documento.id, target, actors["rectorado"])
        with pytest.raises(ValidationError):
            derive_document(documento.id, {"dependencia_destino_id": deps["FI"]}, actors["oti"])
        with pytest.raises(ValidationError):
            derive_document(
                documento.id,
                {"dependencia_destino_id": deps["OTI"], "destinatario_id": oti_user},
                actors["oti"],
            )
        with pytest.raises(ValidationError):
            derive_document(
                documento.id,
                {"dependencia_destino_id": deps["FI"], "destinatario_id": oti_user},
                actors["oti"],
            )

        # An unreceived destination still makes its dependency the holder.
        derive_document(documento.id, target, actors["oti"])
        with pytest.raises(DuplicateError):
            derive_document(documento.id, target, actors["oti"])
        assert DocumentoDestino.query.filter_by(documento_id=documento.id).count() == 2


def test_derive_archived_document_is_state_conflict(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        receive_document(documento.id, documento.destinos[0].id, actors["oti"])
        archive_document(documento.id, "Concluido", actors["oti"])

        fi_user = _user_id("fi@unamad.edu.pe")
        with pytest.raises(StateConflictError):
            derive_document(documento.id, {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user}, actors["oti"])
        # Non-holder still gets the authorization error first.
        with pytest.raises(AuthorizationError):
            derive_document(documento.id, {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user}, actors["fi"])


def test_observe_attend_archive_follow_transition_table(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])

        with pytest.raises(AuthorizationError):
            observe_document(documento.id, "Falta firma", actors["oti"])

        receive_document(documento.id, documento.destinos[0].id, actors["oti"])
        with pytest.raises(ValidationError):
            observe_document(documento.id, "", actors["oti"])

        observado = observe_document(documento.id, "Falta anexo", actors["oti"])
        assert observado.estado == EstadoDocumento.OBSERVADO

        atendido = attend_document(documento.id, "", actors["oti"])
        assert atendido.estado == EstadoDocumento.ATENDIDO
        with pytest.raises(StateConflictError):
            observe_document(documento.id, "Otra vez", actors["oti"])

        archivado = archive_document(documento.id, "", actors["rectorado"])
        assert archivado.estado == EstadoDocumento.ARCHIVADO
        with pytest.raises(StateConflictError):
            archive_document(documento.id, "", actors["oti"])

        acciones = [h.accion for h in archivado.historial]
        assert acciones == [
            AccionHistorial.CREADO,
            AccionHistorial.ENVIADO,
            AccionHistorial.RECIBIDO,
            AccionHistorial.OBSERVADO,
            AccionHistorial.ATENDIDO,
            AccionHistorial.ARCHIVADO,
        ]
        assert estado_desde_historial(list(archivado.historial)) == EstadoDocumento.ARCHIVADO


def test_sign_only_once_and_only_when_required(app, actors, deps, tipos):
    with app.app_context():
        sin_firma = create_document(_payload(tipos, deps), actors["rectorado"])
        with pytest.raises(ValidationError):
            sign_document(sin_firma.id, actors["rectorado"])

        con_firma = create_document(_payload(tipos, deps, correlativo="002", requiere_firma=True), actors["rectorado"])
        with pytest.raises(AuthorizationError):
            sign_document(con_firma.id, actors["fi"])

        firmado = sign_document(con_firma.id, actors["rectorado"])
        assert firmado.firmado_en is not None
        assert firmado.estado == EstadoDocumento.ENVIADO
        assert firmado.historial[-1].accion == AccionHistorial.FIRMADO
        assert firmado.historial[-1].estado_anterior == firmado.historial[-1].estado_nuevo

        with pytest.raises(StateConflictError):
            sign_document(con_firma.id, actors["rectorado"])


def test_history_rows_are_read_only(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        entry = documento.historial[0]
        entry.descripcion = "reescrito"
        with pytest.raises(StateConflictError):
            db.session.commit()
        db.session.rollback()


def test_document_detail_access(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        assert document_detail(documento.id, actors["oti"]).id == documento.id
        assert document_detail(documento.id, actors["admin"]).id == documento.id
        with pytest.raises(AuthorizationError):
            document_detail(documento.id, actors["fi"])
        with pytest.raises(NotFoundError):
            document_detail(9999, actors["admin"])


def test_derive_from_unreceived_destination_receives_it_first(app, actors, deps, tipos):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        origen_id = documento.destinos[0].id
        fi_user = _user_id("fi@unamad.edu.pe")

        nuevo = derive_document(documento.id, {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user}, actors["oti"])
        origen = db.session.get(DocumentoDestino, origen_id)
        assert origen.estado_recepcion == EstadoRecepcion.RECIBIDO
        assert origen.receptor_id == actors["oti"].user_id
        assert pending_count(deps["OTI"]) == 0

        documento = db.session.get(DocumentoTramite, documento.id)
        assert [h.accion for h in documento.historial] == [
            AccionHistorial.CREADO,
            AccionHistorial.ENVIADO,
            AccionHistorial.RECIBIDO,
            AccionHistorial.DERIVADO,
        ]
        assert documento.estado == EstadoDocumento.DERIVADO

        receive_document(documento.id, nuevo.id, actors["fi"])
        documento = db.session.get(DocumentoTramite, documento.id)
        assert documento.estado == EstadoDocumento.RECIBIDO
        assert pending_count(deps["FI"]) == 0
        assert history_is_consistent(documento)


def test_notifications_follow_send_derive_and_receive(app, actors, deps, tipos):
    with app.app_context():
        borrador = create_document(_payload(tipos, deps, correlativo="050", enviar=False), actors["rectorado"])
        assert Notificacion.query.filter_by(documento_id=borrador.id).count() == 0

        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        bandeja_oti = list_notifications(actors["oti"])
        assert [(n.documento_id, n.tipo) for n in bandeja_oti] == [(documento.id, TipoNotificacion.DOCUMENTO_RECIBIDO)]

        receive_document(documento.id, documento.destinos[0].id, actors["oti"])
        avisos_remitente = list_notifications(actors["rectorado"])
        assert len(avisos_remitente) == 1
        assert "Omar Tapia" in avisos_remitente[0].mensaje

        fi_user = _user_id("fi@unamad.edu.pe")
        derive_document(documento.id, {"dependencia_destino_id": deps["FI"], "destinatario_id": fi_user}, actors["oti"])
        bandeja_fi = list_notifications(actors["fi"])
        assert [n.tipo for n in bandeja_fi] == [TipoNotificacion.DOCUMENTO_DERIVADO]
        assert bandeja_fi[0].to_dict()["enlace"] == f"/tramite/documentos/{documento.id}"

        with pytest.raises(AuthorizationError):
            mark_notification_read(bandeja_fi[0].id, actors["oti"])
        leida = mark_notification_read(bandeja_fi[0].id, actors["fi"])
        assert leida.leida is True
        assert list_notifications(actors["fi"], solo_no_leidas=True) == []

        with pytest.raises(NotFoundError):
            mark_notification_read(9999, actors["fi"])


def test_concurrent_receipt_only_one_wins(app, actors, deps, tipos, monkeypatch):
    with app.app_context():
        documento = create_document(_payload(tipos, deps), actors["rectorado"])
        documento_id = documento.id
        destino_id = documento.destinos[0].id
        real_utcnow = utcnow

        def _received_elsewhere():
            db.session.execute(
                update(DocumentoDestino)
                .where(DocumentoDestino.id == destino_id)
                .values(estado_recepcion=EstadoRecepcion.RECIBIDO, receptor_id=actors["admin"].user_id)
            )
            db.session.commit()
            return real_utcnow()

        monkeypatch.setattr("app.tramite.services.utcnow", _received_elsewhere)
        with pytest.raises(StateConflictError):
            receive_document(documento_id, destino_id, actors["oti"])

        destino = db.session.get(DocumentoDestino, destino_id)
        db.session.refresh(destino)
        assert destino.receptor_id == actors["admin"].user_id
        assert DocumentoHistorial.query.filter_by(documento_id=documento_id).count() == 2
        assert Notificacion.query.filter_by(usuario_id=actors["rectorado"].user_id).count() == 0


def test_concurrent_duplicate_correlative_is_reported_as_duplicate(app, actors, deps, tipos, monkeypatch):
    with app.app_context():
        create_document(_payload(tipos, deps), actors["rectorado"])
        notificaciones = Notificacion.query.count()

        # The second creator does not see the first row yet; the unique key decides.
        with monkeypatch.context() as m:
            m.setattr(DocumentoTramite, "query", _NoMatchQuery())
            with pytest.raises(DuplicateError):
                create_document(_payload(tipos, deps), actors["fi"])

        assert DocumentoTramite.query.count() == 1
        assert DocumentoHistorial.query.count() == 2
        assert Notificacion.query.count() == notificaciones
