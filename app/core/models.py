from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.errors import StateConflictError
from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value else None


class Rol(str, Enum):
    ADMIN = "ADMIN"
    JEFE_PATRIMONIO = "JEFE_PATRIMONIO"
    RESPONSABLE = "RESPONSABLE"
    USUARIO = "USUARIO"


class EstadoDocumento(str, Enum):
    BORRADOR = "BORRADOR"
    ENVIADO = "ENVIADO"
    RECIBIDO = "RECIBIDO"
    DERIVADO = "DERIVADO"
    OBSERVADO = "OBSERVADO"
    ATENDIDO = "ATENDIDO"
    ARCHIVADO = "ARCHIVADO"


class EstadoRecepcion(str, Enum):
    PENDIENTE = "PENDIENTE"
    RECIBIDO = "RECIBIDO"
    RECHAZADO = "RECHAZADO"


class AccionHistorial(str, Enum):
    CREADO = "CREADO"
    ENVIADO = "ENVIADO"
    RECIBIDO = "RECIBIDO"
    DERIVADO = "DERIVADO"
    OBSERVADO = "OBSERVADO"
    ATENDIDO = "ATENDIDO"
    ARCHIVADO = "ARCHIVADO"
    FIRMADO = "FIRMADO"


class Prioridad(str, Enum):
    BAJA = "BAJA"
    NORMAL = "NORMAL"
    ALTA = "ALTA"
    URGENTE = "URGENTE"


class EstadoSesion(str, Enum):
    PROGRAMADA = "PROGRAMADA"
    EN_PROCESO = "EN_PROCESO"
    PAUSADA = "PAUSADA"
    FINALIZADA = "FINALIZADA"
    CANCELADA = "CANCELADA"


class ResultadoVerificacion(str, Enum):
    ENCONTRADO = "ENCONTRADO"
    REUBICADO = "REUBICADO"
    NO_ENCONTRADO = "NO_ENCONTRADO"
    SOBRANTE = "SOBRANTE"


class EstadoFisico(str, Enum):
    BUENO = "BUENO"
    REGULAR = "REGULAR"
    MALO = "MALO"
    INOPERATIVO = "INOPERATIVO"
    CHATARRA = "CHATARRA"


class DispositivoTipo(str, Enum):
    MANUAL = "MANUAL"
    ESCANER = "ESCANER"
    CAMARA = "CAMARA"


class TipoNotificacion(str, Enum):
    DOCUMENTO_RECIBIDO = "DOCUMENTO_RECIBIDO"
    DOCUMENTO_DERIVADO = "DOCUMENTO_DERIVADO"


class Sede(db.Model):
    __tablename__ = "sede"

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(10), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    direccion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    dependencias = relationship("Dependencia", back_populates="sede")


class Dependencia(db.Model):
    # Unidad organica (facultad, oficina) que emite/recibe documentos y tiene bienes a cargo
    __tablename__ = "dependencia"

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(160), nullable=False)
    siglas: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    tipo: Mapped[str] = mapped_column(db.String(30), nullable=False, default="OFICINA")
    sede_id: Mapped[int | None] = mapped_column(ForeignKey("sede.id"), nullable=True)
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    sede = relationship("Sede", back_populates="dependencias")
    usuarios = relationship("Usuario", back_populates="dependencia")

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "codigo": self.codigo, "nombre": self.nombre, "siglas": self.siglas}


class Usuario(UserMixin, db.Model):
    __tablename__ = "usuario"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    nombres: Mapped[str] = mapped_column(db.String(120), nullable=False)
    apellidos: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    rol: Mapped[Rol] = mapped_column(SAEnum(Rol, name="usuario_rol"), nullable=False, default=Rol.USUARIO)
    dependencia_id: Mapped[int | None] = mapped_column(ForeignKey("dependencia.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    dependencia = relationship("Dependencia", back_populates="usuarios")

    @property
    def full_name(self) -> str:
        return f"{self.nombres} {self.apellidos}".strip()

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "nombre": self.full_name,
            "rol": self.rol.value,
            "dependencia_id": self.dependencia_id,
        }


class TipoDocumento(db.Model):
    __tablename__ = "tipo_documento"

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(10), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(80), nullable=False)
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "codigo": self.codigo, "nombre": self.nombre}


class DocumentoTramite(db.Model):
    __tablename__ = "documento_tramite"
    __table_args__ = (
        UniqueConstraint("tipo_documento_id", "correlativo", "anio", name="uq_documento_tipo_correlativo_anio"),
        Index("ix_documento_origen_estado", "dependencia_origen_id", "estado"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tipo_documento_id: Mapped[int] = mapped_column(ForeignKey("tipo_documento.id"), nullable=False)
    correlativo: Mapped[str] = mapped_column(db.String(20), nullable=False)
    anio: Mapped[int] = mapped_column(nullable=False)
    asunto: Mapped[str] = mapped_column(db.String(255), nullable=False)
    contenido: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    folios: Mapped[int] = mapped_column(nullable=False, default=1)
    # Cache of the latest history entry; DocumentoHistorial is canonical.
    estado: Mapped[EstadoDocumento] = mapped_column(
        SAEnum(EstadoDocumento, name="documento_estado"),
        nullable=False,
        default=EstadoDocumento.BORRADOR,
    )
    prioridad: Mapped[Prioridad] = mapped_column(
        SAEnum(Prioridad, name="documento_prioridad"),
        nullable=False,
        default=Prioridad.NORMAL,
    )
    requiere_firma: Mapped[bool] = mapped_column(nullable=False, default=False)
    firmado_en: Mapped[datetime | None] = mapped_column(nullable=True)
    fecha_limite: Mapped[date | None] = mapped_column(nullable=True)
    observaciones: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    dependencia_origen_id: Mapped[int] = mapped_column(ForeignKey("dependencia.id"), nullable=False)
    remitente_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    fecha_envio: Mapped[datetime | None] = mapped_column(nullable=True)

    tipo_documento = relationship("TipoDocumento")
    dependencia_origen = relationship("Dependencia")
    remitente = relationship("Usuario")
    destinos = relationship(
        "DocumentoDestino",
        back_populates="documento",
        cascade="all, delete-orphan",
        order_by="DocumentoDestino.id",
    )
    archivos = relationship("ArchivoAdjunto", back_populates="documento", cascade="all, delete-orphan")
    historial = relationship(
        "DocumentoHistorial",
        back_populates="documento",
        cascade="all, delete-orphan",
        order_by="(DocumentoHistorial.fecha, DocumentoHistorial.id)",
    )
    notificaciones = relationship("Notificacion", back_populates="documento", cascade="all, delete-orphan")

    @property
    def codigo(self) -> str:
        prefix = self.tipo_documento.codigo if self.tipo_documento else "DOC"
        return f"{prefix} {self.correlativo}-{self.anio}"

    @property
    def destinos_principales(self) -> list["DocumentoDestino"]:
        return [d for d in self.destinos if not d.es_copia]

    @property
    def pendiente(self) -> bool:
        return any(d.estado_recepcion == EstadoRecepcion.PENDIENTE for d in self.destinos_principales)

    def to_dict(self, include_historial: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.id,
            "codigo": self.codigo,
            "tipo_documento_id": self.tipo_documento_id,
            "correlativo": self.correlativo,
            "anio": self.anio,
            "asunto": self.asunto,
            "contenido": self.contenido,
            "folios": self.folios,
            "estado": self.estado.value,
            "prioridad": self.prioridad.value,
            "requiere_firma": self.requiere_firma,
            "firmado_en": _iso(self.firmado_en),
            "fecha_limite": _iso(self.fecha_limite),
            "observaciones": self.observaciones,
            "dependencia_origen_id": self.dependencia_origen_id,
            "remitente_id": self.remitente_id,
            "created_at": _iso(self.created_at),
            "fecha_envio": _iso(self.fecha_envio),
            "pendiente": self.pendiente,
            "destinos": [d.to_dict() for d in self.destinos],
            "archivos": [a.to_dict() for a in self.archivos],
        }
        if include_historial:
            data["historial"] = [h.to_dict() for h in self.historial]
        return data


class DocumentoDestino(db.Model):
    # One row per hop/recipient; derivations append rows, never rewrite them.
    __tablename__ = "documento_destino"
    __table_args__ = (
        Index("ix_destino_dependencia_estado", "dependencia_destino_id", "estado_recepcion"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    documento_id: Mapped[int] = mapped_column(ForeignKey("documento_tramite.id"), nullable=False, index=True)
    dependencia_destino_id: Mapped[int] = mapped_column(ForeignKey("dependencia.id"), nullable=False)
    destinatario_id: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    derivado_desde_id: Mapped[int | None] = mapped_column(ForeignKey("documento_destino.id"), nullable=True)
    es_copia: Mapped[bool] = mapped_column(nullable=False, default=False)
    estado_recepcion: Mapped[EstadoRecepcion] = mapped_column(
        SAEnum(EstadoRecepcion, name="destino_estado_recepcion"),
        nullable=False,
        default=EstadoRecepcion.PENDIENTE,
    )
    receptor_id: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    fecha_recepcion: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    documento = relationship("DocumentoTramite", back_populates="destinos")
    dependencia_destino = relationship("Dependencia")
    destinatario = relationship("Usuario", foreign_keys=[destinatario_id])
    receptor = relationship("Usuario", foreign_keys=[receptor_id])

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "documento_id": self.documento_id,
            "dependencia_destino_id": self.dependencia_destino_id,
            "destinatario_id": self.destinatario_id,
            "derivado_desde_id": self.derivado_desde_id,
            "es_copia": self.es_copia,
            "estado_recepcion": self.estado_recepcion.value,
            "receptor_id": self.receptor_id,
            "fecha_recepcion": _iso(self.fecha_recepcion),
        }


class ArchivoAdjunto(db.Model):
    __tablename__ = "archivo_adjunto"

    id: Mapped[int] = mapped_column(primary_key=True)
    documento_id: Mapped[int] = mapped_column(ForeignKey("documento_tramite.id"), nullable=False, index=True)
    nombre: Mapped[str] = mapped_column(db.String(255), nullable=False)
    url: Mapped[str] = mapped_column(db.String(500), nullable=False)
    tipo: Mapped[str] = mapped_column(db.String(100), nullable=False, default="application/pdf")
    tamanio: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    documento = relationship("DocumentoTramite", back_populates="archivos")

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "nombre": self.nombre, "url": self.url, "tipo": self.tipo, "tamanio": self.tamanio}


class DocumentoHistorial(db.Model):
    __tablename__ = "documento_historial"
    __table_args__ = (Index("ix_historial_documento_fecha", "documento_id", "fecha", "id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    documento_id: Mapped[int] = mapped_column(ForeignKey("documento_tramite.id"), nullable=False)
    accion: Mapped[AccionHistorial] = mapped_column(SAEnum(AccionHistorial, name="historial_accion"), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    estado_anterior: Mapped[EstadoDocumento | None] = mapped_column(
        SAEnum(EstadoDocumento, name="documento_estado"),
        nullable=True,
    )
    estado_nuevo: Mapped[EstadoDocumento] = mapped_column(
        SAEnum(EstadoDocumento, name="documento_estado"),
        nullable=False,
    )
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    dependencia_id: Mapped[int | None] = mapped_column(ForeignKey("dependencia.id"), nullable=True)
    fecha: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    documento = relationship("DocumentoTramite", back_populates="historial")
    usuario = relationship("Usuario")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "accion": self.accion.value,
            "descripcion": self.descripcion,
            "estado_anterior": self.estado_anterior.value if self.estado_anterior else None,
            "estado_nuevo": self.estado_nuevo.value,
            "usuario_id": self.usuario_id,
            "dependencia_id": self.dependencia_id,
            "fecha": _iso(self.fecha),
        }


class Notificacion(db.Model):
    __tablename__ = "notificacion"
    __table_args__ = (Index("ix_notificacion_usuario_leida", "usuario_id", "leida"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    documento_id: Mapped[int | None] = mapped_column(ForeignKey("documento_tramite.id"), nullable=True, index=True)
    tipo: Mapped[TipoNotificacion] = mapped_column(SAEnum(TipoNotificacion, name="notificacion_tipo"), nullable=False)
    titulo: Mapped[str] = mapped_column(db.String(160), nullable=False)
    mensaje: Mapped[str] = mapped_column(db.String(500), nullable=False)
    leida: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    documento = relationship("DocumentoTramite", back_populates="notificaciones")
    usuario = relationship("Usuario")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "usuario_id": self.usuario_id,
            "documento_id": self.documento_id,
            "tipo": self.tipo.value,
            "titulo": self.titulo,
            "mensaje": self.mensaje,
            "enlace": f"/tramite/documentos/{self.documento_id}" if self.documento_id else None,
            "leida": self.leida,
            "created_at": _iso(self.created_at),
        }


class SesionInventario(db.Model):
    __tablename__ = "sesion_inventario"
    __table_args__ = (
        CheckConstraint(
            "total_verificados = total_encontrados + total_reubicados + total_no_encontrados + total_sobrantes",
            name="ck_sesion_contadores",
        ),
        Index("ix_sesion_estado_programada", "estado", "fecha_programada"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(160), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    estado: Mapped[EstadoSesion] = mapped_column(
        SAEnum(EstadoSesion, name="sesion_estado"),
        nullable=False,
        default=EstadoSesion.PROGRAMADA,
    )
    fecha_programada: Mapped[date] = mapped_column(nullable=False)
    fecha_inicio: Mapped[datetime | None] = mapped_column(nullable=True)
    fecha_fin: Mapped[datetime | None] = mapped_column(nullable=True)
    dependencia_id: Mapped[int | None] = mapped_column(ForeignKey("dependencia.id"), nullable=True)
    sede_id: Mapped[int | None] = mapped_column(ForeignKey("sede.id"), nullable=True)
    ubicacion_fisica: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    observaciones: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    responsable_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    total_bienes_siga: Mapped[int] = mapped_column(nullable=False, default=0)
    total_verificados: Mapped[int] = mapped_column(nullable=False, default=0)
    total_encontrados: Mapped[int] = mapped_column(nullable=False, default=0)
    total_reubicados: Mapped[int] = mapped_column(nullable=False, default=0)
    total_no_encontrados: Mapped[int] = mapped_column(nullable=False, default=0)
    total_sobrantes: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    dependencia = relationship("Dependencia")
    sede = relationship("Sede")
    responsable = relationship("Usuario")
    verificaciones = relationship("VerificacionBien", back_populates="sesion", lazy="dynamic")

    @property
    def avance_pct(self) -> float:
        if not self.total_bienes_siga:
            return 0.0
        return round(100 * (self.total_verificados - self.total_sobrantes) / self.total_bienes_siga, 2)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "codigo": self.codigo,
            "nombre": self.nombre,
            "descripcion": self.descripcion,
            "estado": self.estado.value,
            "fecha_programada": _iso(self.fecha_programada),
            "fecha_inicio": _iso(self.fecha_inicio),
            "fecha_fin": _iso(self.fecha_fin),
            "dependencia_id": self.dependencia_id,
            "sede_id": self.sede_id,
            "ubicacion_fisica": self.ubicacion_fisica,
            "responsable_id": self.responsable_id,
            "total_bienes_siga": self.total_bienes_siga,
            "total_verificados": self.total_verificados,
            "total_encontrados": self.total_encontrados,
            "total_reubicados": self.total_reubicados,
            "total_no_encontrados": self.total_no_encontrados,
            "total_sobrantes": self.total_sobrantes,
            "avance_pct": self.avance_pct,
        }


class VerificacionBien(db.Model):
    __tablename__ = "verificacion_bien"
    __table_args__ = (
        UniqueConstraint("sesion_id", "codigo_patrimonial", name="uq_verificacion_sesion_codigo"),
        CheckConstraint(
            "resultado != 'REUBICADO' OR ubicacion_real IS NOT NULL",
            name="ck_verificacion_reubicado_ubicacion",
        ),
        Index("ix_verificacion_sesion_resultado", "sesion_id", "resultado"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    sesion_id: Mapped[int] = mapped_column(ForeignKey("sesion_inventario.id"), nullable=False)
    codigo_patrimonial: Mapped[str] = mapped_column(db.String(20), nullable=False)
    descripcion_siga: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    marca_siga: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    modelo_siga: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    serie_siga: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    color_siga: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    responsable_siga: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    usuario_siga: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    dependencia_siga: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    ubicacion_siga: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    valor_siga: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    resultado: Mapped[ResultadoVerificacion] = mapped_column(
        SAEnum(ResultadoVerificacion, name="verificacion_resultado"),
        nullable=False,
    )
    estado_fisico: Mapped[EstadoFisico | None] = mapped_column(
        SAEnum(EstadoFisico, name="verificacion_estado_fisico"),
        nullable=True,
    )
    ubicacion_real: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    responsable_real: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    observaciones: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    verificador_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    dispositivo_tipo: Mapped[DispositivoTipo] = mapped_column(
        SAEnum(DispositivoTipo, name="verificacion_dispositivo"),
        nullable=False,
        default=DispositivoTipo.MANUAL,
    )
    dispositivo_info: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    fecha_verificacion: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)

    sesion = relationship("SesionInventario", back_populates="verificaciones")
    verificador = relationship("Usuario")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "sesion_id": self.sesion_id,
            "codigo_patrimonial": self.codigo_patrimonial,
            "descripcion_siga": self.descripcion_siga,
            "marca_siga": self.marca_siga,
            "modelo_siga": self.modelo_siga,
            "serie_siga": self.serie_siga,
            "dependencia_siga": self.dependencia_siga,
            "ubicacion_siga": self.ubicacion_siga,
            "responsable_siga": self.responsable_siga,
            "valor_siga": str(self.valor_siga) if self.valor_siga is not None else None,
            "resultado": self.resultado.value,
            "estado_fisico": self.estado_fisico.value if self.estado_fisico else None,
            "ubicacion_real": self.ubicacion_real,
            "observaciones": self.observaciones,
            "verificador_id": self.verificador_id,
            "dispositivo_tipo": self.dispositivo_tipo.value,
            "fecha_verificacion": _iso(self.fecha_verificacion),
        }


class BienPatrimonial(db.Model):
    # Read-only mirror of SIG_PATRIMONIO, lives on the "siga" bind
    __bind_key__ = "siga"
    __tablename__ = "bien_patrimonial"

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo_patrimonial: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(500), nullable=False)
    marca: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    modelo: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    serie: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    color: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    dependencia_codigo: Mapped[str | None] = mapped_column(db.String(20), nullable=True, index=True)
    nombre_depend: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    sede_codigo: Mapped[str | None] = mapped_column(db.String(10), nullable=True, index=True)
    ubicacion_fisica: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    responsable: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    responsable_documento: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    usuario: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    valor_neto: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)


@event.listens_for(DocumentoHistorial, "before_update")
def historial_before_update(_mapper, _connection, target: DocumentoHistorial) -> None:
    raise StateConflictError(f"El historial del documento {target.documento_id} es de solo lectura")


@event.listens_for(VerificacionBien, "before_update")
def verificacion_before_update(_mapper, _connection, target: VerificacionBien) -> None:
    raise StateConflictError(f"La verificacion de {target.codigo_patrimonial} ya fue registrada")


@event.listens_for(DocumentoDestino, "before_update")
def destino_before_update(_mapper, _connection, target: DocumentoDestino) -> None:
    # Reception moves forward only: once RECIBIDO the row is frozen.
    history = inspect(target).attrs.estado_recepcion.history
    if history.deleted and history.deleted[0] == EstadoRecepcion.RECIBIDO:
        raise StateConflictError(f"El destino {target.id} ya fue recibido")


def seed_demo_data(session) -> None:
    sede = Sede(codigo="01", nombre="Ciudad Universitaria", direccion="Av. Jorge Chavez 1160")
    session.add(sede)
    session.flush()

    dependencias = {
        "RECT": Dependencia(codigo="002", nombre="Rectorado", siglas="RECT", tipo="RECTORADO", sede_id=sede.id),
        "OTI": Dependencia(
            codigo="007",
            nombre="Oficina de Tecnologias de la Informacion",
            siglas="OTI",
            tipo="OFICINA",
            sede_id=sede.id,
        ),
        "FI": Dependencia(codigo="004", nombre="Facultad de Ingenieria", siglas="FI", tipo="FACULTAD", sede_id=sede.id),
        "OAB": Dependencia(codigo="008", nombre="Oficina de Abastecimiento", siglas="OAB", tipo="OFICINA", sede_id=sede.id),
    }
    session.add_all(dependencias.values())
    session.flush()

    users = [
        ("admin@unamad.edu.pe", "Admin", "Sistema", "admin123", Rol.ADMIN, "RECT"),
        ("rectorado@unamad.edu.pe", "Rosa", "Quispe", "rect123", Rol.RESPONSABLE, "RECT"),
        ("oti@unamad.edu.pe", "Omar", "Tapia", "oti123", Rol.RESPONSABLE, "OTI"),
        ("fi@unamad.edu.pe", "Fiorella", "Inga", "fi123", Rol.USUARIO, "FI"),
        ("patrimonio@unamad.edu.pe", "Pedro", "Mamani", "patri123", Rol.JEFE_PATRIMONIO, "OAB"),
    ]
    for email, nombres, apellidos, password, rol, siglas in users:
        session.add(
            Usuario(
                email=email,
                nombres=nombres,
                apellidos=apellidos,
                password_hash=generate_password_hash(password),
                rol=rol,
                dependencia_id=dependencias[siglas].id,
            )
        )

    session.add_all(
        [
            TipoDocumento(codigo="OF", nombre="Oficio"),
            TipoDocumento(codigo="MEM", nombre="Memorando"),
            TipoDocumento(codigo="INF", nombre="Informe"),
            TipoDocumento(codigo="SOL", nombre="Solicitud"),
        ]
    )

    bienes = [
        ("112236140168", "COMPUTADORA PERSONAL PORTATIL", "LENOVO", "THINKPAD E14", "PF2K9L0A", "OTI", "Oficina 101"),
        ("112236140169", "COMPUTADORA PERSONAL PORTATIL", "LENOVO", "THINKPAD E14", "PF2K9L0B", "OTI", "Oficina 101"),
        ("740899500012", "IMPRESORA LASER", "HP", "LASERJET M404", "VNB3K12345", "OTI", "Oficina 102"),
        ("746441880004", "ESCRITORIO DE MELAMINA", None, None, None, "RECT", "Despacho rectoral"),
        ("746441880005", "SILLA GIRATORIA", None, None, None, "RECT", "Despacho rectoral"),
        ("952282150031", "PROYECTOR MULTIMEDIA", "EPSON", "POWERLITE X49", "X4K1234", "FI", "Aula 201"),
    ]
    for codigo, descripcion, marca, modelo, serie, siglas, ubicacion in bienes:
        dep = dependencias[siglas]
        session.add(
            BienPatrimonial(
                codigo_patrimonial=codigo,
                descripcion=descripcion,
                marca=marca,
                modelo=modelo,
                serie=serie,
                dependencia_codigo=dep.codigo,
                nombre_depend=dep.nombre,
                sede_codigo=sede.codigo,
                ubicacion_fisica=ubicacion,
                responsable=f"Responsable {siglas}",
                valor_neto=Decimal("1500.00"),
            )
        )

    session.commit()
