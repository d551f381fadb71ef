from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from app.core.errors import AuthorizationError, DuplicateError, NotFoundError, StateConflictError, ValidationError
from app.core.extensions import db
from app.core.models import (
    AccionHistorial,
    ArchivoAdjunto,
    Dependencia,
    DocumentoDestino,
    DocumentoHistorial,
    DocumentoTramite,
    EstadoDocumento,
    EstadoRecepcion,
    Notificacion,
    Prioridad,
    TipoDocumento,
    TipoNotificacion,
    Usuario,
    utcnow,
)
from app.core.permissions import Actor

logger = logging.getLogger(__name__)


DOCUMENT_TRANSITIONS: dict[EstadoDocumento, set[EstadoDocumento]] = {
    EstadoDocumento.BORRADOR: {EstadoDocumento.ENVIADO},
    EstadoDocumento.ENVIADO: {EstadoDocumento.RECIBIDO, EstadoDocumento.DERIVADO},
    EstadoDocumento.RECIBIDO: {
        EstadoDocumento.DERIVADO,
        EstadoDocumento.OBSERVADO,
        EstadoDocumento.ATENDIDO,
        EstadoDocumento.ARCHIVADO,
    },
    EstadoDocumento.DERIVADO: {
        EstadoDocumento.RECIBIDO,
        EstadoDocumento.DERIVADO,
        EstadoDocumento.OBSERVADO,
        EstadoDocumento.ATENDIDO,
    },
    EstadoDocumento.OBSERVADO: {
        EstadoDocumento.DERIVADO,
        EstadoDocumento.ATENDIDO,
        EstadoDocumento.ARCHIVADO,
    },
    EstadoDocumento.ATENDIDO: {EstadoDocumento.ARCHIVADO},
    EstadoDocumento.ARCHIVADO: set(),
}

# Receiving the last principal destination only promotes these states to RECIBIDO.
RECEIVABLE_PROMOTION_STATES = {EstadoDocumento.ENVIADO, EstadoDocumento.DERIVADO}
NON_RECEIVABLE_STATES = {EstadoDocumento.BORRADOR, EstadoDocumento.ARCHIVADO}
DRAFT_EDITABLE_FIELDS = ("asunto", "contenido", "folios", "prioridad", "fecha_limite", "observaciones", "requiere_firma")


def _parse_int(value: object, field_name: str, required: bool = True) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"Falta {field_name}")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Valor invalido para {field_name}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Valor invalido para {field_name}") from exc


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "si", "on", "yes"}


def _parse_optional_iso_date(value: object) -> date | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Formato de fecha invalido: {raw}") from exc


def _parse_prioridad(value: object) -> Prioridad:
    raw = str(value or "").strip().upper()
    if not raw:
        return Prioridad.NORMAL
    try:
        return Prioridad[raw]
    except KeyError as exc:
        raise ValidationError("Prioridad invalida") from exc


def _require_dependencia(actor: Actor) -> int:
    if actor.dependencia_id is None:
        raise ValidationError("El usuario no tiene una dependencia asignada")
    return actor.dependencia_id


def estado_desde_historial(historial: list[DocumentoHistorial]) -> EstadoDocumento | None:
    """Displayed state is the ``estado_nuevo`` of the latest history entry.

    ``historial`` must be in chronological order, as ``DocumentoTramite.historial`` is.
    """
    if not historial:
        return None
    return historial[-1].estado_nuevo


def _append_history(
    documento: DocumentoTramite,
    accion: AccionHistorial,
    actor: Actor,
    descripcion: str,
    estado_nuevo: EstadoDocumento | None = None,
) -> DocumentoHistorial:
    estado_anterior = documento.estado if documento.historial else None
    entry = DocumentoHistorial(
        accion=accion,
        descripcion=descripcion[:500],
        estado_anterior=estado_anterior,
        estado_nuevo=estado_nuevo or documento.estado,
        usuario_id=actor.user_id,
        dependencia_id=actor.dependencia_id,
    )
    documento.historial.append(entry)
    # The cached column always mirrors the entry just appended.
    documento.estado = entry.estado_nuevo
    return entry


def _record_transition(
    documento: DocumentoTramite,
    accion: AccionHistorial,
    target: EstadoDocumento,
    actor: Actor,
    descripcion: str,
) -> DocumentoHistorial:
    allowed = DOCUMENT_TRANSITIONS.get(documento.estado, set())
    if target not in allowed:
        raise StateConflictError(f"Transicion invalida: {documento.estado.value} -> {target.value}")
    return _append_history(documento, accion, actor, descripcion, target)


def documento_by_id(documento_id: int) -> DocumentoTramite:
    documento = (
        DocumentoTramite.query.options(
            joinedload(DocumentoTramite.tipo_documento),
            joinedload(DocumentoTramite.destinos),
        )
        .filter_by(id=documento_id)
        .first()
    )
    if not documento:
        raise NotFoundError("Documento no encontrado")
    return documento


def _dependencia_by_id(dependencia_id: int, label: str = "Dependencia") -> Dependencia:
    dependencia = db.session.get(Dependencia, dependencia_id)
    if not dependencia or not dependencia.activo:
        raise NotFoundError(f"{label} no encontrada")
    return dependencia


def _validate_destinatario(destinatario_id: int | None, dependencia: Dependencia) -> None:
    if destinatario_id is None:
        return
    user = db.session.get(Usuario, destinatario_id)
    if not user or not user.is_active:
        raise NotFoundError("Destinatario no encontrado")
    if user.dependencia_id != dependencia.id:
        raise ValidationError(f"El destinatario no pertenece a {dependencia.siglas}")


def _parse_recipients(raw: object, origen_id: int) -> list[DocumentoDestino]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationError("Los destinatarios deben enviarse como lista")
    destinos: list[DocumentoDestino] = []
    seen: set[int] = set()
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("Destinatario invalido")
        dependencia_id = _parse_int(item.get("dependencia_id"), "dependencia destino")
        if dependencia_id in seen:
            raise ValidationError("Dependencia destino repetida")
        if dependencia_id == origen_id:
            raise ValidationError("No se puede enviar a la misma dependencia de origen")
        seen.add(dependencia_id)
        dependencia = _dependencia_by_id(dependencia_id, "Dependencia destino")
        destinatario_id = _parse_int(item.get("destinatario_id"), "destinatario", required=False)
        _validate_destinatario(destinatario_id, dependencia)
        destinos.append(
            DocumentoDestino(
                dependencia_destino_id=dependencia.id,
                destinatario_id=destinatario_id,
                es_copia=_parse_bool(item.get("es_copia")),
                estado_recepcion=EstadoRecepcion.PENDIENTE,
            )
        )
    return destinos


def _parse_attachments(payload: dict[str, object]) -> list[ArchivoAdjunto]:
    raw = payload.get("archivos")
    if raw is None and payload.get("archivo"):
        raw = [payload.get("archivo")]
    if not isinstance(raw, list):
        raw = []
    archivos: list[ArchivoAdjunto] = []
    for item in raw:
        if not isinstance(item, dict) or not str(item.get("url") or "").strip():
            continue
        url = str(item["url"]).strip()
        archivos.append(
            ArchivoAdjunto(
                nombre=str(item.get("nombre") or url.rsplit("/", 1)[-1])[:255],
                url=url,
                tipo=str(item.get("tipo") or "application/pdf"),
                tamanio=_parse_int(item.get("tamanio"), "tamanio", required=False) or 0,
            )
        )
    if not archivos:
        raise ValidationError("El archivo PDF del documento es obligatorio")
    return archivos


def _notify(
    documento: DocumentoTramite,
    usuario_ids: list[int],
    tipo: TipoNotificacion,
    titulo: str,
    mensaje: str,
) -> None:
    # Rides on the caller's transaction through the document cascade.
    for usuario_id in dict.fromkeys(usuario_ids):
        documento.notificaciones.append(
            Notificacion(
                usuario_id=usuario_id,
                tipo=tipo,
                titulo=titulo,
                mensaje=mensaje[:500],
            )
        )


def _tipo_nombre(documento: DocumentoTramite) -> str:
    return documento.tipo_documento.nombre if documento.tipo_documento else "documento"


def _dispatch(documento: DocumentoTramite, actor: Actor) -> None:
    if not documento.destinos_principales:
        raise ValidationError("Debe indicar al menos un destinatario principal")
    _record_transition(documento, AccionHistorial.ENVIADO, EstadoDocumento.ENVIADO, actor, "Documento enviado")
    documento.fecha_envio = utcnow()

    dependencia_ids = [d.dependencia_destino_id for d in documento.destinos]
    # No autoflush: the pending document must reach the database only at commit.
    with db.session.no_autoflush:
        usuarios = (
            Usuario.query.filter(Usuario.dependencia_id.in_(dependencia_ids), Usuario.is_active.is_(True))
            .order_by(Usuario.id.asc())
            .all()
        )
    _notify(
        documento,
        [u.id for u in usuarios],
        TipoNotificacion.DOCUMENTO_RECIBIDO,
        "Nuevo documento recibido",
        f"Has recibido un nuevo {_tipo_nombre(documento)}: {documento.asunto}",
    )


def _commit_or_duplicate(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateError(message) from exc


def create_document(payload: dict[str, object], actor: Actor) -> DocumentoTramite:
    origen_id = _require_dependencia(actor)
    tipo_documento_id = _parse_int(payload.get("tipo_documento_id"), "tipo de documento", required=False)
    correlativo = str(payload.get("correlativo") or "").strip()
    asunto = str(payload.get("asunto") or "").strip()
    if not tipo_documento_id or not correlativo or not asunto:
        raise ValidationError("Tipo de documento, correlativo y asunto son requeridos")
    anio = _parse_int(payload.get("anio"), "anio", required=False) or date.today().year
    archivos = _parse_attachments(payload)
    enviar = _parse_bool(payload.get("enviar")) or str(payload.get("estado") or "").upper() == "ENVIADO"

    tipo = db.session.get(TipoDocumento, tipo_documento_id)
    if not tipo or not tipo.activo:
        raise NotFoundError("Tipo de documento no encontrado")

    destinos = _parse_recipients(payload.get("destinatarios"), origen_id)
    if enviar and not any(not d.es_copia for d in destinos):
        raise ValidationError("Debe indicar al menos un destinatario principal para enviar")

    existente = DocumentoTramite.query.filter_by(
        tipo_documento_id=tipo.id,
        correlativo=correlativo,
        anio=anio,
    ).first()
    if existente:
        raise DuplicateError("Ya existe un documento con ese correlativo para este tipo y año")

    documento = DocumentoTramite(
        tipo_documento_id=tipo.id,
        correlativo=correlativo,
        anio=anio,
        asunto=asunto[:255],
        contenido=(str(payload.get("referencia") or payload.get("contenido") or "").strip() or None),
        folios=_parse_int(payload.get("folios"), "folios", required=False) or 1,
        prioridad=_parse_prioridad(payload.get("prioridad")),
        requiere_firma=_parse_bool(payload.get("requiere_firma")),
        fecha_limite=_parse_optional_iso_date(payload.get("fecha_limite")),
        observaciones=(str(payload.get("observaciones") or "").strip() or None),
        estado=EstadoDocumento.BORRADOR,
        dependencia_origen_id=origen_id,
        remitente_id=actor.user_id,
    )
    documento.tipo_documento = tipo
    documento.destinos = destinos
    documento.archivos = archivos
    db.session.add(documento)
    _append_history(documento, AccionHistorial.CREADO, actor, "Documento creado", EstadoDocumento.BORRADOR)
    if enviar:
        _dispatch(documento, actor)

    _commit_or_duplicate("Ya existe un documento con ese correlativo para este tipo y año")
    logger.info(
        "Documento %s creado por usuario=%s estado=%s destinos=%d",
        documento.codigo,
        actor.user_id,
        documento.estado.value,
        len(destinos),
    )
    return documento


def _require_creator(documento: DocumentoTramite, actor: Actor, action: str) -> None:
    if documento.remitente_id != actor.user_id and not actor.is_admin:
        raise AuthorizationError(f"No tiene permisos para {action} este documento")


def update_draft_document(documento_id: int, payload: dict[str, object], actor: Actor) -> DocumentoTramite:
    documento = documento_by_id(documento_id)
    _require_creator(documento, actor, "modificar")
    if documento.estado != EstadoDocumento.BORRADOR:
        raise StateConflictError("Solo se pueden modificar documentos en estado borrador")

    for field_name in DRAFT_EDITABLE_FIELDS:
        if field_name not in payload:
            continue
        value = payload[field_name]
        if field_name == "asunto":
            asunto = str(value or "").strip()
            if not asunto:
                raise ValidationError("El asunto es obligatorio")
            documento.asunto = asunto[:255]
        elif field_name == "folios":
            documento.folios = _parse_int(value, "folios") or 1
        elif field_name == "prioridad":
            documento.prioridad = _parse_prioridad(value)
        elif field_name == "fecha_limite":
            documento.fecha_limite = _parse_optional_iso_date(value)
        elif field_name == "requiere_firma":
            documento.requiere_firma = _parse_bool(value)
        else:
            setattr(documento, field_name, str(value or "").strip() or None)
    db.session.commit()
    return documento


def send_draft_document(documento_id: int, payload: dict[str, object], actor: Actor) -> DocumentoTramite:
    documento = documento_by_id(documento_id)
    _require_creator(documento, actor, "enviar")
    if documento.estado != EstadoDocumento.BORRADOR:
        raise StateConflictError("Solo se pueden enviar documentos en estado borrador")
    if payload.get("destinatarios") is not None:
        documento.destinos = _parse_recipients(payload.get("destinatarios"), documento.dependencia_origen_id)
    _dispatch(documento, actor)
    db.session.commit()
    logger.info("Documento %s enviado por usuario=%s", documento.codigo, actor.user_id)
    return documento


def _holder_destination(
    documento: DocumentoTramite,
    actor: Actor,
    desde_id: int | None,
) -> DocumentoDestino:
    if desde_id is not None:
        destino = next((d for d in documento.destinos if d.id == desde_id), None)
        if destino is None:
            raise NotFoundError("Destino de origen no encontrado para este documento")
        if (
            destino.dependencia_destino_id != actor.dependencia_id
            or destino.es_copia
            or destino.estado_recepcion == EstadoRecepcion.RECHAZADO
        ):
            raise AuthorizationError("No es el poseedor actual del documento")
        return destino
    candidates = [
        d
        for d in documento.destinos
        if d.dependencia_destino_id == actor.dependencia_id
        and not d.es_copia
        and d.estado_recepcion != EstadoRecepcion.RECHAZADO
    ]
    if not candidates:
        raise AuthorizationError("No es el poseedor actual del documento")
    return candidates[-1]


def _mark_received(documento: DocumentoTramite, destino: DocumentoDestino, actor: Actor) -> None:
    # Conditional update: of two concurrent receipts only one matches PENDIENTE.
    result = db.session.execute(
        update(DocumentoDestino)
        .where(DocumentoDestino.id == destino.id)
        .where(DocumentoDestino.estado_recepcion == EstadoRecepcion.PENDIENTE)
        .values(
            estado_recepcion=EstadoRecepcion.RECIBIDO,
            receptor_id=actor.user_id,
            fecha_recepcion=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise StateConflictError("El documento ya fue procesado")
    db.session.refresh(destino)

    estado_nuevo = documento.estado
    todos_recibidos = all(d.estado_recepcion == EstadoRecepcion.RECIBIDO for d in documento.destinos_principales)
    if not destino.es_copia and todos_recibidos and documento.estado in RECEIVABLE_PROMOTION_STATES:
        estado_nuevo = EstadoDocumento.RECIBIDO

    receptor = db.session.get(Usuario, actor.user_id)
    receptor_nombre = receptor.full_name if receptor else str(actor.user_id)
    _append_history(
        documento,
        AccionHistorial.RECIBIDO,
        actor,
        f"Documento recibido por {receptor_nombre}",
        estado_nuevo,
    )
    _notify(
        documento,
        [documento.remitente_id],
        TipoNotificacion.DOCUMENTO_RECIBIDO,
        "Documento recibido",
        f"Tu documento ha sido recibido por {receptor_nombre}",
    )


def derive_document(documento_id: int, payload: dict[str, object], actor: Actor) -> DocumentoDestino:
    documento = documento_by_id(documento_id)
    desde = _holder_destination(
        documento,
        actor,
        _parse_int(payload.get("destino_origen_id"), "destino de origen", required=False),
    )
    if documento.estado == EstadoDocumento.ARCHIVADO:
        raise StateConflictError("El documento ya fue archivado")
    if EstadoDocumento.DERIVADO not in DOCUMENT_TRANSITIONS.get(documento.estado, set()):
        raise StateConflictError(f"No se puede derivar un documento en estado {documento.estado.value}")

    dependencia_destino_id = _parse_int(payload.get("dependencia_destino_id"), "dependencia destino", required=False)
    destinatario_id = _parse_int(payload.get("destinatario_id"), "destinatario", required=False)
    if not dependencia_destino_id or not destinatario_id:
        raise ValidationError("Dependencia destino y destinatario son requeridos")
    if dependencia_destino_id == actor.dependencia_id:
        raise ValidationError("No se puede derivar a la misma dependencia")
    dependencia = _dependencia_by_id(dependencia_destino_id, "Dependencia destino")
    _validate_destinatario(destinatario_id, dependencia)
    if any(
        d.dependencia_destino_id == dependencia.id and d.estado_recepcion == EstadoRecepcion.PENDIENTE
        for d in documento.destinos
    ):
        raise DuplicateError("El documento ya fue enviado a esta dependencia y sigue pendiente")

    # Forwarding an unreceived hop receives it first, so it stops counting as pending.
    if desde.estado_recepcion == EstadoRecepcion.PENDIENTE:
        _mark_received(documento, desde, actor)

    nuevo = DocumentoDestino(
        dependencia_destino_id=dependencia.id,
        destinatario_id=destinatario_id,
        derivado_desde_id=desde.id,
        es_copia=False,
        estado_recepcion=EstadoRecepcion.PENDIENTE,
    )
    documento.destinos.append(nuevo)
    observaciones = str(payload.get("observaciones") or "").strip()
    _record_transition(
        documento,
        AccionHistorial.DERIVADO,
        EstadoDocumento.DERIVADO,
        actor,
        observaciones or f"Documento derivado a {dependencia.nombre}",
    )
    _notify(
        documento,
        [destinatario_id],
        TipoNotificacion.DOCUMENTO_DERIVADO,
        "Documento derivado recibido",
        f"Se ha derivado el {_tipo_nombre(documento)}: {documento.asunto}",
    )
    db.session.commit()
    logger.info(
        "Documento %s derivado de dependencia=%s a dependencia=%s (destino=%s)",
        documento.codigo,
        actor.dependencia_id,
        dependencia.id,
        nuevo.id,
    )
    return nuevo


def receive_document(documento_id: int, destino_id: int, actor: Actor) -> DocumentoDestino:
    documento = documento_by_id(documento_id)
    destino = next((d for d in documento.destinos if d.id == destino_id), None)
    if destino is None:
        raise NotFoundError("Destino no encontrado para este documento")
    if destino.dependencia_destino_id != actor.dependencia_id:
        raise AuthorizationError("No pertenece a la dependencia destino de este documento")
    if documento.estado in NON_RECEIVABLE_STATES:
        raise StateConflictError("El documento no esta en estado valido para ser recibido")
    if destino.estado_recepcion != EstadoRecepcion.PENDIENTE:
        raise StateConflictError("El documento ya fue procesado")

    _mark_received(documento, destino, actor)
    db.session.commit()
    logger.info(
        "Documento %s recibido en destino=%s copia=%s estado=%s",
        documento.codigo,
        destino.id,
        destino.es_copia,
        documento.estado.value,
    )
    return destino


def delete_draft_document(documento_id: int, actor: Actor) -> None:
    documento = documento_by_id(documento_id)
    _require_creator(documento, actor, "eliminar")
    if documento.estado != EstadoDocumento.BORRADOR:
        raise StateConflictError("Solo se pueden eliminar documentos en estado borrador")
    codigo = documento.codigo
    db.session.delete(documento)
    db.session.commit()
    logger.info("Documento borrador %s eliminado por usuario=%s", codigo, actor.user_id)


def _is_holder(documento: DocumentoTramite, actor: Actor) -> bool:
    return any(
        d.dependencia_destino_id == actor.dependencia_id and d.estado_recepcion == EstadoRecepcion.RECIBIDO
        for d in documento.destinos
    )


def _register_action(
    documento_id: int,
    actor: Actor,
    accion: AccionHistorial,
    target: EstadoDocumento,
    descripcion: str,
    allow_origin: bool = False,
) -> DocumentoTramite:
    documento = documento_by_id(documento_id)
    is_origin = allow_origin and documento.dependencia_origen_id == actor.dependencia_id
    if not (_is_holder(documento, actor) or is_origin or actor.is_admin):
        raise AuthorizationError("No tiene el documento en su poder")
    _record_transition(documento, accion, target, actor, descripcion)
    db.session.commit()
    logger.info("Documento %s -> %s por usuario=%s", documento.codigo, target.value, actor.user_id)
    return documento


def observe_document(documento_id: int, descripcion: str, actor: Actor) -> DocumentoTramite:
    descripcion = (descripcion or "").strip()
    if not descripcion:
        raise ValidationError("Debe indicar el motivo de la observacion")
    return _register_action(documento_id, actor, AccionHistorial.OBSERVADO, EstadoDocumento.OBSERVADO, descripcion)


def attend_document(documento_id: int, descripcion: str, actor: Actor) -> DocumentoTramite:
    return _register_action(
        documento_id,
        actor,
        AccionHistorial.ATENDIDO,
        EstadoDocumento.ATENDIDO,
        (descripcion or "").strip() or "Documento atendido",
    )


def archive_document(documento_id: int, descripcion: str, actor: Actor) -> DocumentoTramite:
    return _register_action(
        documento_id,
        actor,
        AccionHistorial.ARCHIVADO,
        EstadoDocumento.ARCHIVADO,
        (descripcion or "").strip() or "Documento archivado",
        allow_origin=True,
    )


def sign_document(documento_id: int, actor: Actor) -> DocumentoTramite:
    documento = documento_by_id(documento_id)
    if documento.remitente_id != actor.user_id and not _is_holder(documento, actor):
        raise AuthorizationError("No puede firmar este documento")
    if not documento.requiere_firma:
        raise ValidationError("El documento no requiere firma")
    if documento.firmado_en is not None:
        raise StateConflictError("El documento ya fue firmado")
    if documento.estado == EstadoDocumento.ARCHIVADO:
        raise StateConflictError("El documento ya fue archivado")
    documento.firmado_en = utcnow()
    _append_history(documento, AccionHistorial.FIRMADO, actor, "Documento firmado")
    db.session.commit()
    return documento


def _can_view(documento: DocumentoTramite, actor: Actor) -> bool:
    return (
        actor.is_admin
        or documento.remitente_id == actor.user_id
        or documento.dependencia_origen_id == actor.dependencia_id
        or any(d.dependencia_destino_id == actor.dependencia_id for d in documento.destinos)
    )


def document_detail(documento_id: int, actor: Actor) -> DocumentoTramite:
    documento = documento_by_id(documento_id)
    if not _can_view(documento, actor):
        raise AuthorizationError("No tiene acceso a este documento")
    return documento


def document_history(documento_id: int, actor: Actor) -> list[DocumentoHistorial]:
    documento = document_detail(documento_id, actor)
    return list(documento.historial)


def list_inbox(actor: Actor, filters: dict[str, str]) -> list[dict[str, object]]:
    if actor.dependencia_id is None:
        return []
    query = (
        DocumentoTramite.query.options(joinedload(DocumentoTramite.tipo_documento))
        .join(DocumentoDestino, DocumentoDestino.documento_id == DocumentoTramite.id)
        .filter(DocumentoDestino.dependencia_destino_id == actor.dependencia_id)
        .filter(DocumentoTramite.estado != EstadoDocumento.BORRADOR)
    )
    estado_recepcion = (filters.get("estado_recepcion") or "").strip().upper()
    if estado_recepcion:
        try:
            query = query.filter(DocumentoDestino.estado_recepcion == EstadoRecepcion[estado_recepcion])
        except KeyError as exc:
            raise ValidationError("Estado de recepcion invalido") from exc
    documentos = query.distinct().order_by(DocumentoTramite.created_at.desc(), DocumentoTramite.id.desc()).all()

    rows: list[dict[str, object]] = []
    for documento in documentos:
        mine = [d for d in documento.destinos if d.dependencia_destino_id == actor.dependencia_id]
        row = documento.to_dict()
        row["destinos"] = [d.to_dict() for d in mine]
        row["pendiente_para_mi"] = any(
            not d.es_copia and d.estado_recepcion == EstadoRecepcion.PENDIENTE for d in mine
        )
        rows.append(row)
    return rows


def list_outbox(actor: Actor, filters: dict[str, str]) -> list[DocumentoTramite]:
    if actor.dependencia_id is None:
        return []
    query = DocumentoTramite.query.filter(DocumentoTramite.dependencia_origen_id == actor.dependencia_id)
    estado = (filters.get("estado") or "").strip().upper()
    if estado:
        try:
            query = query.filter(DocumentoTramite.estado == EstadoDocumento[estado])
        except KeyError as exc:
            raise ValidationError("Estado de documento invalido") from exc
    return query.order_by(DocumentoTramite.created_at.desc(), DocumentoTramite.id.desc()).all()


def pending_count(dependencia_id: int) -> int:
    # Copies never count as pending work.
    return (
        db.session.query(func.count(DocumentoDestino.id))
        .join(DocumentoTramite, DocumentoTramite.id == DocumentoDestino.documento_id)
        .filter(DocumentoDestino.dependencia_destino_id == dependencia_id)
        .filter(DocumentoDestino.es_copia.is_(False))
        .filter(DocumentoDestino.estado_recepcion == EstadoRecepcion.PENDIENTE)
        .filter(DocumentoTramite.estado != EstadoDocumento.BORRADOR)
        .scalar()
    )


def list_document_types() -> list[TipoDocumento]:
    return TipoDocumento.query.filter_by(activo=True).order_by(TipoDocumento.codigo.asc()).all()


def list_dependency_users(dependencia_id: int) -> list[Usuario]:
    _dependencia_by_id(dependencia_id)
    return (
        Usuario.query.filter_by(dependencia_id=dependencia_id, is_active=True)
        .order_by(Usuario.apellidos.asc(), Usuario.nombres.asc())
        .all()
    )


def history_is_consistent(documento: DocumentoTramite) -> bool:
    return estado_desde_historial(list(documento.historial)) == documento.estado



def list_notifications(actor: Actor, solo_no_leidas: bool = False) -> list[Notificacion]:
    query = Notificacion.query.filter_by(usuario_id=actor.user_id)
    if solo_no_leidas:
        query = query.filter(Notificacion.leida.is_(False))
    return query.order_by(Notificacion.created_at.desc(), Notificacion.id.desc()).all()


def mark_notification_read(notificacion_id: int, actor: Actor) -> Notificacion:
    notificacion = db.session.get(Notificacion, notificacion_id)
    if not notificacion:
        raise NotFoundError("Notificacion no encontrada")
    if notificacion.usuario_id != actor.user_id:
        raise AuthorizationError("La notificacion pertenece a otro usuario")
    notificacion.leida = True
    db.session.commit()
    return notificacion
