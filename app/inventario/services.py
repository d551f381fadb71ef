from __future__ import annotations

from datetime import date
import logging

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from app.core.errors import AuthorizationError, DuplicateError, NotFoundError, StateConflictError, ValidationError
from app.core.extensions import db
from app.core.models import (
    Dependencia,
    DispositivoTipo,
    EstadoFisico,
    EstadoSesion,
    ResultadoVerificacion,
    Rol,
    Sede,
    SesionInventario,
    Usuario,
    VerificacionBien,
    utcnow,
)
from app.core.permissions import Actor
from app.inventario.scanner import InputClassifier, build_input_classifier, classify_keystrokes
from app.patrimonio.catalog import AssetCatalog, AssetSnapshot, get_asset_catalog

logger = logging.getLogger(__name__)


# action -> (allowed source states, target state)
SESSION_TRANSITIONS: dict[str, tuple[set[EstadoSesion], EstadoSesion]] = {
    "iniciar": ({EstadoSesion.PROGRAMADA, EstadoSesion.PAUSADA}, EstadoSesion.EN_PROCESO),
    "pausar": ({EstadoSesion.EN_PROCESO}, EstadoSesion.PAUSADA),
    "finalizar": ({EstadoSesion.EN_PROCESO}, EstadoSesion.FINALIZADA),
    "cancelar": (
        {EstadoSesion.PROGRAMADA, EstadoSesion.EN_PROCESO, EstadoSesion.PAUSADA},
        EstadoSesion.CANCELADA,
    ),
}

COUNTER_BY_RESULTADO = {
    ResultadoVerificacion.ENCONTRADO: "total_encontrados",
    ResultadoVerificacion.REUBICADO: "total_reubicados",
    ResultadoVerificacion.NO_ENCONTRADO: "total_no_encontrados",
    ResultadoVerificacion.SOBRANTE: "total_sobrantes",
}

SESSION_MANAGER_ROLES = {Rol.ADMIN, Rol.JEFE_PATRIMONIO}
DELETABLE_SESSION_STATES = {EstadoSesion.PROGRAMADA, EstadoSesion.CANCELADA}
CODIGO_PATRIMONIAL_MAX = 20


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


def _parse_date(value: object, field_name: str) -> date:
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Formato de fecha invalido: {raw}") from exc


def _parse_enum(enum_cls, value: object, field_name: str):
    raw = str(value or "").strip().upper()
    if not raw:
        return None
    try:
        return enum_cls[raw]
    except KeyError as exc:
        raise ValidationError(f"Valor invalido para {field_name}: {raw}") from exc


def _clean(value: object, limit: int) -> str:
    return str(value or "").strip()[:limit]


def sesion_by_id(sesion_id: int) -> SesionInventario:
    sesion = db.session.get(SesionInventario, sesion_id)
    if not sesion:
        raise NotFoundError("Sesion de inventario no encontrada")
    return sesion


def _require_session_manager(sesion: SesionInventario, actor: Actor) -> None:
    if sesion.responsable_id != actor.user_id and actor.rol not in SESSION_MANAGER_ROLES:
        raise AuthorizationError("Solo el responsable de la sesion puede realizar esta accion")


def _resolve_scope(payload: dict[str, object]) -> tuple[Dependencia | None, Sede | None]:
    dependencia = None
    sede = None
    dependencia_id = _parse_int(payload.get("dependencia_id"), "dependencia", required=False)
    if dependencia_id:
        dependencia = db.session.get(Dependencia, dependencia_id)
        if not dependencia:
            raise NotFoundError("Dependencia no encontrada")
    sede_id = _parse_int(payload.get("sede_id"), "sede", required=False)
    if sede_id:
        sede = db.session.get(Sede, sede_id)
        if not sede:
            raise NotFoundError("Sede no encontrada")
    return dependencia, sede


def _resolve_responsable(value: object, default_id: int) -> int:
    responsable_id = _parse_int(value, "responsable", required=False) or default_id
    user = db.session.get(Usuario, responsable_id)
    if not user or not user.is_active:
        raise NotFoundError("Responsable no encontrado")
    return user.id


def _snapshot_total(catalog: AssetCatalog, dependencia: Dependencia | None, sede: Sede | None) -> int:
    return catalog.count_assets(
        dependencia_codigo=dependencia.codigo if dependencia else None,
        sede_codigo=sede.codigo if sede else None,
    )


def _next_session_code(year: int) -> str:
    prefix = f"INV-{year}-"
    codigos = db.session.scalars(
        select(SesionInventario.codigo).where(SesionInventario.codigo.like(f"{prefix}%"))
    ).all()
    # Highest suffix, not a row count: deleted sessions leave gaps.
    ultimo = max((int(c[len(prefix):]) for c in codigos if c[len(prefix):].isdigit()), default=0)
    return f"{prefix}{ultimo + 1:03d}"


def create_session(
    payload: dict[str, object],
    actor: Actor,
    catalog: AssetCatalog | None = None,
) -> SesionInventario:
    nombre = _clean(payload.get("nombre"), 160)
    if not nombre:
        raise ValidationError("El nombre de la sesion es obligatorio")
    fecha_programada = _parse_date(payload.get("fecha_programada"), "fecha programada")
    dependencia, sede = _resolve_scope(payload)
    responsable_id = _resolve_responsable(payload.get("responsable_id"), actor.user_id)

    # Denominator is frozen here; later catalog changes do not alter it.
    total_bienes = _snapshot_total(catalog or get_asset_catalog(), dependencia, sede)

    sesion = SesionInventario(
        codigo=_next_session_code(date.today().year),
        nombre=nombre,
        descripcion=_clean(payload.get("descripcion"), 500),
        estado=EstadoSesion.PROGRAMADA,
        fecha_programada=fecha_programada,
        dependencia_id=dependencia.id if dependencia else None,
        sede_id=sede.id if sede else None,
        ubicacion_fisica=_clean(payload.get("ubicacion_fisica"), 255),
        observaciones=_clean(payload.get("observaciones"), 500),
        responsable_id=responsable_id,
        total_bienes_siga=total_bienes,
    )
    db.session.add(sesion)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateError("Ya existe una sesion con ese codigo, intente nuevamente") from exc
    logger.info(
        "Sesion %s creada por usuario=%s dependencia=%s sede=%s total_bienes_siga=%d",
        sesion.codigo,
        actor.user_id,
        sesion.dependencia_id,
        sesion.sede_id,
        total_bienes,
    )
    return sesion


def update_session(
    sesion_id: int,
    payload: dict[str, object],
    actor: Actor,
    catalog: AssetCatalog | None = None,
) -> SesionInventario:
    sesion = sesion_by_id(sesion_id)
    _require_session_manager(sesion, actor)
    if sesion.estado != EstadoSesion.PROGRAMADA:
        raise StateConflictError("Solo se pueden editar sesiones programadas")

    if "nombre" in payload:
        nombre = _clean(payload.get("nombre"), 160)
        if not nombre:
            raise ValidationError("El nombre de la sesion es obligatorio")
        sesion.nombre = nombre
    if "fecha_programada" in payload:
        sesion.fecha_programada = _parse_date(payload.get("fecha_programada"), "fecha programada")
    for field_name, limit in (("descripcion", 500), ("ubicacion_fisica", 255), ("observaciones", 500)):
        if field_name in payload:
            setattr(sesion, field_name, _clean(payload.get(field_name), limit))
    if "responsable_id" in payload:
        sesion.responsable_id = _resolve_responsable(payload.get("responsable_id"), sesion.responsable_id)
    if "dependencia_id" in payload or "sede_id" in payload:
        dependencia, sede = _resolve_scope(
            {
                "dependencia_id": payload.get("dependencia_id", sesion.dependencia_id),
                "sede_id": payload.get("sede_id", sesion.sede_id),
            }
        )
        sesion.dependencia_id = dependencia.id if dependencia else None
        sesion.sede_id = sede.id if sede else None
        sesion.total_bienes_siga = _snapshot_total(catalog or get_asset_catalog(), dependencia, sede)
    db.session.commit()
    return sesion


def delete_session(sesion_id: int, actor: Actor) -> None:
    sesion = sesion_by_id(sesion_id)
    _require_session_manager(sesion, actor)
    if sesion.estado not in DELETABLE_SESSION_STATES:
        raise StateConflictError("Solo se pueden eliminar sesiones programadas o canceladas")
    if sesion.verificaciones.count():
        raise StateConflictError("La sesion tiene verificaciones registradas")
    codigo = sesion.codigo
    db.session.delete(sesion)
    db.session.commit()
    logger.info("Sesion %s eliminada por usuario=%s", codigo, actor.user_id)


def transition_session(sesion_id: int, accion: str, actor: Actor) -> SesionInventario:
    accion = (accion or "").strip().lower()
    if accion not in SESSION_TRANSITIONS:
        raise ValidationError("Accion no valida")
    sesion = sesion_by_id(sesion_id)
    _require_session_manager(sesion, actor)

    origenes, destino = SESSION_TRANSITIONS[accion]
    estado_actual = sesion.estado
    if estado_actual not in origenes:
        raise StateConflictError(f"No se puede {accion} una sesion en estado {estado_actual.value}")

    values: dict[str, object] = {"estado": destino}
    now = utcnow()
    if destino == EstadoSesion.EN_PROCESO and sesion.fecha_inicio is None:
        values["fecha_inicio"] = now
    if destino in {EstadoSesion.FINALIZADA, EstadoSesion.CANCELADA} and sesion.fecha_fin is None:
        values["fecha_fin"] = now

    result = db.session.execute(
        update(SesionInventario)
        .where(SesionInventario.id == sesion.id)
        .where(SesionInventario.estado == estado_actual)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise StateConflictError("La sesion fue modificada por otro usuario")
    db.session.commit()
    logger.info(
        "Sesion %s: %s -> %s por usuario=%s",
        sesion.codigo,
        estado_actual.value,
        destino.value,
        actor.user_id,
    )
    return sesion


def _code_from_keystrokes(raw: object, classifier: InputClassifier) -> tuple[str, DispositivoTipo]:
    if not isinstance(raw, list):
        raise ValidationError("Las pulsaciones deben enviarse como lista")
    events: list[tuple[str, float]] = []
    for item in raw:
        if isinstance(item, dict):
            key, timestamp = item.get("key"), item.get("t")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            key, timestamp = item
        else:
            raise ValidationError("Pulsacion invalida")
        try:
            events.append((str(key), float(timestamp)))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Pulsacion invalida") from exc
    results = classify_keystrokes(events, classifier)
    if not results:
        raise ValidationError("No se detecto un codigo patrimonial valido")
    if len(results) > 1:
        raise ValidationError("Se detectaron varios codigos en una sola lectura")
    return results[0].codigo, results[0].dispositivo


def _snapshot_fields(snapshot: AssetSnapshot | None) -> dict[str, object]:
    if snapshot is None:
        return {}
    return {
        "descripcion_siga": snapshot.descripcion,
        "marca_siga": snapshot.marca,
        "modelo_siga": snapshot.modelo,
        "serie_siga": snapshot.serie,
        "color_siga": snapshot.color,
        "responsable_siga": snapshot.responsable,
        "usuario_siga": snapshot.usuario,
        "dependencia_siga": snapshot.nombre_depend,
        "ubicacion_siga": snapshot.ubicacion_fisica,
        "valor_siga": snapshot.valor_neto,
    }


def submit_verification(
    sesion_id: int,
    payload: dict[str, object],
    actor: Actor,
    catalog: AssetCatalog | None = None,
    classifier: InputClassifier | None = None,
) -> VerificacionBien:
    sesion = sesion_by_id(sesion_id)
    if sesion.estado != EstadoSesion.EN_PROCESO:
        raise StateConflictError("La sesion no esta en proceso")

    if payload.get("keystrokes"):
        codigo, dispositivo = _code_from_keystrokes(
            payload.get("keystrokes"),
            classifier or build_input_classifier(current_app.config),
        )
    else:
        codigo = str(payload.get("codigo_patrimonial") or payload.get("codigo") or "").strip()
        dispositivo = _parse_enum(DispositivoTipo, payload.get("dispositivo_tipo"), "dispositivo") or DispositivoTipo.MANUAL
    if not codigo:
        raise ValidationError("El codigo patrimonial es requerido")
    if len(codigo) > CODIGO_PATRIMONIAL_MAX:
        raise ValidationError(f"El codigo patrimonial excede {CODIGO_PATRIMONIAL_MAX} caracteres")

    resultado = _parse_enum(ResultadoVerificacion, payload.get("resultado"), "resultado")
    estado_fisico = _parse_enum(EstadoFisico, payload.get("estado_fisico"), "estado fisico")
    ubicacion_real = _clean(payload.get("ubicacion_real"), 255) or None

    existente = VerificacionBien.query.filter_by(sesion_id=sesion.id, codigo_patrimonial=codigo).first()
    if existente:
        raise DuplicateError(
            "El bien ya fue verificado en esta sesion",
            details={"verificacion_id": existente.id, "resultado": existente.resultado.value},
        )

    snapshot = (catalog or get_asset_catalog()).find_asset_by_code(codigo)
    if snapshot is None:
        if resultado not in (None, ResultadoVerificacion.SOBRANTE):
            logger.warning("Codigo %s no existe en SIGA; resultado %s cambiado a SOBRANTE", codigo, resultado.value)
        resultado = ResultadoVerificacion.SOBRANTE
    else:
        resultado = resultado or ResultadoVerificacion.ENCONTRADO
        if resultado == ResultadoVerificacion.SOBRANTE:
            raise ValidationError("Un bien registrado en SIGA no puede marcarse como sobrante")
    if resultado == ResultadoVerificacion.REUBICADO and not ubicacion_real:
        raise ValidationError("La ubicacion real es obligatoria para bienes reubicados")

    verificacion = VerificacionBien(
        sesion_id=sesion.id,
        codigo_patrimonial=codigo,
        resultado=resultado,
        estado_fisico=estado_fisico,
        ubicacion_real=ubicacion_real,
        responsable_real=_clean(payload.get("responsable_real"), 160) or None,
        observaciones=_clean(payload.get("observaciones"), 500) or None,
        verificador_id=actor.user_id,
        dispositivo_tipo=dispositivo,
        dispositivo_info=_clean(payload.get("dispositivo_info"), 255) or None,
        **_snapshot_fields(snapshot),
    )
    db.session.add(verificacion)

    counter = COUNTER_BY_RESULTADO[resultado]
    try:
        # Autoflush inserts the entry; the increment only applies while still EN_PROCESO.
        result = db.session.execute(
            update(SesionInventario)
            .where(SesionInventario.id == sesion.id)
            .where(SesionInventario.estado == EstadoSesion.EN_PROCESO)
            .values(
                {
                    SesionInventario.total_verificados: SesionInventario.total_verificados + 1,
                    getattr(SesionInventario, counter): getattr(SesionInventario, counter) + 1,
                }
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise StateConflictError("La sesion no esta en proceso")
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateError("El bien ya fue verificado en esta sesion") from exc

    logger.info(
        "Verificacion sesion=%s codigo=%s resultado=%s dispositivo=%s usuario=%s",
        sesion.codigo,
        codigo,
        resultado.value,
        dispositivo.value,
        actor.user_id,
    )
    return verificacion


def _paginate_query(query, page: int, page_size: int) -> dict[str, object]:
    safe_page = page if page > 0 else 1
    safe_size = max(1, min(page_size, 100))
    total = query.order_by(None).count()
    rows = query.offset((safe_page - 1) * safe_size).limit(safe_size).all()
    return {
        "rows": [row.to_dict() for row in rows],
        "page": safe_page,
        "page_size": safe_size,
        "total": total,
        "pages": max(1, (total + safe_size - 1) // safe_size),
    }


def list_sessions(filters: dict[str, str], page: int = 1, page_size: int = 20) -> dict[str, object]:
    query = SesionInventario.query
    estado = _parse_enum(EstadoSesion, filters.get("estado"), "estado")
    if estado:
        query = query.filter(SesionInventario.estado == estado)
    dependencia_id = _parse_int(filters.get("dependencia_id"), "dependencia", required=False)
    if dependencia_id:
        query = query.filter(SesionInventario.dependencia_id == dependencia_id)
    sede_id = _parse_int(filters.get("sede_id"), "sede", required=False)
    if sede_id:
        query = query.filter(SesionInventario.sede_id == sede_id)
    query = query.order_by(SesionInventario.fecha_programada.desc(), SesionInventario.id.desc())
    return _paginate_query(query, page, page_size)


def session_detail(sesion_id: int, limit: int = 10) -> dict[str, object]:
    sesion = sesion_by_id(sesion_id)
    ultimas = (
        sesion.verificaciones.order_by(VerificacionBien.fecha_verificacion.desc(), VerificacionBien.id.desc())
        .limit(limit)
        .all()
    )
    data = sesion.to_dict()
    data["ultimas_verificaciones"] = [v.to_dict() for v in ultimas]
    return data


def list_verifications(
    sesion_id: int,
    filters: dict[str, str],
    page: int = 1,
    page_size: int = 20,
) -> dict[str, object]:
    sesion = sesion_by_id(sesion_id)
    query = VerificacionBien.query.filter(VerificacionBien.sesion_id == sesion.id)
    resultado = _parse_enum(ResultadoVerificacion, filters.get("resultado"), "resultado")
    if resultado:
        query = query.filter(VerificacionBien.resultado == resultado)
    codigo = (filters.get("codigo") or "").strip()
    if codigo:
        query = query.filter(VerificacionBien.codigo_patrimonial.like(f"%{codigo}%"))
    query = query.order_by(VerificacionBien.fecha_verificacion.desc(), VerificacionBien.id.desc())
    return _paginate_query(query, page, page_size)


def recount_session_counters(sesion_id: int) -> dict[str, dict[str, int]]:
    """Rebuild a session's counters from its verification rows.

    Counters are normally maintained incrementally; this is the only path
    that can lower them.
    """
    sesion = sesion_by_id(sesion_id)
    rows = (
        db.session.query(VerificacionBien.resultado, func.count(VerificacionBien.id))
        .filter(VerificacionBien.sesion_id == sesion.id)
        .group_by(VerificacionBien.resultado)
        .all()
    )
    by_resultado = {resultado: count for resultado, count in rows}
    antes = {field_name: getattr(sesion, field_name) for field_name in ("total_verificados", *COUNTER_BY_RESULTADO.values())}
    for resultado, field_name in COUNTER_BY_RESULTADO.items():
        setattr(sesion, field_name, by_resultado.get(resultado, 0))
    sesion.total_verificados = sum(by_resultado.values())
    db.session.commit()
    despues = {field_name: getattr(sesion, field_name) for field_name in antes}
    if antes != despues:
        logger.warning("Sesion %s: contadores corregidos %s -> %s", sesion.codigo, antes, despues)
    return {"antes": antes, "despues": despues}


def dashboard_stats() -> dict[str, object]:
    sesiones = dict(
        db.session.query(SesionInventario.estado, func.count(SesionInventario.id))
        .group_by(SesionInventario.estado)
        .all()
    )
    verificaciones = dict(
        db.session.query(VerificacionBien.resultado, func.count(VerificacionBien.id))
        .group_by(VerificacionBien.resultado)
        .all()
    )
    return {
        "sesiones_por_estado": {estado.value: sesiones.get(estado, 0) for estado in EstadoSesion},
        "verificaciones_por_resultado": {
            resultado.value: verificaciones.get(resultado, 0) for resultado in ResultadoVerificacion
        },
        "sesiones_activas": sesiones.get(EstadoSesion.EN_PROCESO, 0),
        "total_verificaciones": sum(verificaciones.values()),
    }
