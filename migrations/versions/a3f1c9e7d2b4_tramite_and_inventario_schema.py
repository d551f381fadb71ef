"""tramite and inventario schema

Revision ID: a3f1c9e7d2b4
Revises:
Create Date: 2026-10-19 10:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "a3f1c9e7d2b4"
down_revision = None
branch_labels = None
depends_on = None


ESTADOS_DOCUMENTO = ("BORRADOR", "ENVIADO", "RECIBIDO", "DERIVADO", "OBSERVADO", "ATENDIDO", "ARCHIVADO")


def _enum(name: str, *values: str, existing: bool = False) -> sa.types.TypeEngine:
    # Postgres enum types are shared across tables; only the first use creates the type.
    if not existing:
        return sa.Enum(*values, name=name)
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False),
        "postgresql",
    )


def upgrade():
    op.create_table(
        "sede",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("codigo", sa.String(length=10), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("direccion", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
        sa.UniqueConstraint("nombre"),
    )
    op.create_table(
        "dependencia",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("codigo", sa.String(length=20), nullable=False),
        sa.Column("nombre", sa.String(length=160), nullable=False),
        sa.Column("siglas", sa.String(length=20), nullable=False),
        sa.Column("tipo", sa.String(length=30), nullable=False, server_default="OFICINA"),
        sa.Column("sede_id", sa.Integer(), nullable=True),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["sede_id"], ["sede.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
        sa.UniqueConstraint("siglas"),
    )
    op.create_table(
        "usuario",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("nombres", sa.String(length=120), nullable=False),
        sa.Column("apellidos", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("rol", _enum("usuario_rol", "ADMIN", "JEFE_PATRIMONIO", "RESPONSABLE", "USUARIO"), nullable=False),
        sa.Column("dependencia_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["dependencia_id"], ["dependencia.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    with op.batch_alter_table("usuario", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_usuario_dependencia_id"), ["dependencia_id"], unique=False)

    op.create_table(
        "tipo_documento",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("codigo", sa.String(length=10), nullable=False),
        sa.Column("nombre", sa.String(length=80), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
    )
    op.create_table(
        "documento_tramite",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tipo_documento_id", sa.Integer(), nullable=False),
        sa.Column("correlativo", sa.String(length=20), nullable=False),
        sa.Column("anio", sa.Integer(), nullable=False),
        sa.Column("asunto", sa.String(length=255), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=True),
        sa.Column("folios", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("estado", _enum("documento_estado", *ESTADOS_DOCUMENTO), nullable=False),
        sa.Column(
            "prioridad",
            _enum("documento_prioridad", "BAJA", "NORMAL", "ALTA", "URGENTE"),
            nullable=False,
        ),
        sa.Column("requiere_firma", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("firmado_en", sa.DateTime(), nullable=True),
        sa.Column("fecha_limite", sa.Date(), nullable=True),
        sa.Column("observaciones", sa.Text(), nullable=True),
        sa.Column("dependencia_origen_id", sa.Integer(), nullable=False),
        sa.Column("remitente_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("fecha_envio", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["dependencia_origen_id"], ["dependencia.id"]),
        sa.ForeignKeyConstraint(["remitente_id"], ["usuario.id"]),
        sa.ForeignKeyConstraint(["tipo_documento_id"], ["tipo_documento.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tipo_documento_id", "correlativo", "anio", name="uq_documento_tipo_correlativo_anio"),
    )
    op.create_index(
        "ix_documento_origen_estado",
        "documento_tramite",
        ["dependencia_origen_id", "estado"],
        unique=False,
    )

    op.create_table(
        "documento_destino",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("documento_id", sa.Integer(), nullable=False),
        sa.Column("dependencia_destino_id", sa.Integer(), nullable=False),
        sa.Column("destinatario_id", sa.Integer(), nullable=True),
        sa.Column("derivado_desde_id", sa.Integer(), nullable=True),
        sa.Column("es_copia", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "estado_recepcion",
            _enum("destino_estado_recepcion", "PENDIENTE", "RECIBIDO", "RECHAZADO"),
            nullable=False,
        ),
        sa.Column("receptor_id", sa.Integer(), nullable=True),
        sa.Column("fecha_recepcion", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["dependencia_destino_id"], ["dependencia.id"]),
        sa.ForeignKeyConstraint(["derivado_desde_id"], ["documento_destino.id"]),
        sa.ForeignKeyConstraint(["destinatario_id"], ["usuario.id"]),
        sa.ForeignKeyConstraint(["documento_id"], ["documento_tramite.id"]),
        sa.ForeignKeyConstraint(["receptor_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("documento_destino", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_documento_destino_documento_id"), ["documento_id"], unique=False)
    op.create_index(
        "ix_destino_dependencia_estado",
        "documento_destino",
        ["dependencia_destino_id", "estado_recepcion"],
        unique=False,
    )

    op.create_table(
        "archivo_adjunto",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("documento_id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=500), nullable=False),
        sa.Column("tipo", sa.String(length=100), nullable=False, server_default="application/pdf"),
        sa.Column("tamanio", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["documento_id"], ["documento_tramite.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("archivo_adjunto", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_archivo_adjunto_documento_id"), ["documento_id"], unique=False)

    op.create_table(
        "documento_historial",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("documento_id", sa.Integer(), nullable=False),
        sa.Column(
            "accion",
            _enum(
                "historial_accion",
                "CREADO",
                "ENVIADO",
                "RECIBIDO",
                "DERIVADO",
                "OBSERVADO",
                "ATENDIDO",
                "ARCHIVADO",
                "FIRMADO",
            ),
            nullable=False,
        ),
        sa.Column("descripcion", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("estado_anterior", _enum("documento_estado", *ESTADOS_DOCUMENTO, existing=True), nullable=True),
        sa.Column("estado_nuevo", _enum("documento_estado", *ESTADOS_DOCUMENTO, existing=True), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("dependencia_id", sa.Integer(), nullable=True),
        sa.Column("fecha", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["dependencia_id"], ["dependencia.id"]),
        sa.ForeignKeyConstraint(["documento_id"], ["documento_tramite.id"]),
        sa.ForeignKeyConstraint(["usuario_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_historial_documento_fecha",
        "documento_historial",
        ["documento_id", "fecha", "id"],
        unique=False,
    )

    op.create_table(
        "sesion_inventario",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("codigo", sa.String(length=20), nullable=False),
        sa.Column("nombre", sa.String(length=160), nullable=False),
        sa.Column("descripcion", sa.String(length=500), nullable=False, server_default=""),
        sa.Column(
            "estado",
            _enum("sesion_estado", "PROGRAMADA", "EN_PROCESO", "PAUSADA", "FINALIZADA", "CANCELADA"),
            nullable=False,
        ),
        sa.Column("fecha_programada", sa.Date(), nullable=False),
        sa.Column("fecha_inicio", sa.DateTime(), nullable=True),
        sa.Column("fecha_fin", sa.DateTime(), nullable=True),
        sa.Column("dependencia_id", sa.Integer(), nullable=True),
        sa.Column("sede_id", sa.Integer(), nullable=True),
        sa.Column("ubicacion_fisica", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("observaciones", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("responsable_id", sa.Integer(), nullable=False),
        sa.Column("total_bienes_siga", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_verificados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_encontrados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_reubicados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_no_encontrados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sobrantes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "total_verificados = total_encontrados + total_reubicados + total_no_encontrados + total_sobrantes",
            name="ck_sesion_contadores",
        ),
        sa.ForeignKeyConstraint(["dependencia_id"], ["dependencia.id"]),
        sa.ForeignKeyConstraint(["responsable_id"], ["usuario.id"]),
        sa.ForeignKeyConstraint(["sede_id"], ["sede.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
    )
    op.create_index(
        "ix_sesion_estado_programada",
        "sesion_inventario",
        ["estado", "fecha_programada"],
        unique=False,
    )

    op.create_table(
        "verificacion_bien",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sesion_id", sa.Integer(), nullable=False),
        sa.Column("codigo_patrimonial", sa.String(length=20), nullable=False),
        sa.Column("descripcion_siga", sa.String(length=500), nullable=True),
        sa.Column("marca_siga", sa.String(length=120), nullable=True),
        sa.Column("modelo_siga", sa.String(length=120), nullable=True),
        sa.Column("serie_siga", sa.String(length=120), nullable=True),
        sa.Column("color_siga", sa.String(length=60), nullable=True),
        sa.Column("responsable_siga", sa.String(length=160), nullable=True),
        sa.Column("usuario_siga", sa.String(length=160), nullable=True),
        sa.Column("dependencia_siga", sa.String(length=160), nullable=True),
        sa.Column("ubicacion_siga", sa.String(length=255), nullable=True),
        sa.Column("valor_siga", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column(
            "resultado",
            _enum("verificacion_resultado", "ENCONTRADO", "REUBICADO", "NO_ENCONTRADO", "SOBRANTE"),
            nullable=False,
        ),
        sa.Column(
            "estado_fisico",
            _enum("verificacion_estado_fisico", "BUENO", "REGULAR", "MALO", "INOPERATIVO", "CHATARRA"),
            nullable=True,
        ),
        sa.Column("ubicacion_real", sa.String(length=255), nullable=True),
        sa.Column("responsable_real", sa.String(length=160), nullable=True),
        sa.Column("observaciones", sa.String(length=500), nullable=True),
        sa.Column("verificador_id", sa.Integer(), nullable=False),
        sa.Column(
            "dispositivo_tipo",
            _enum("verificacion_dispositivo", "MANUAL", "ESCANER", "CAMARA"),
            nullable=False,
        ),
        sa.Column("dispositivo_info", sa.String(length=255), nullable=True),
        sa.Column("fecha_verificacion", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "resultado != 'REUBICADO' OR ubicacion_real IS NOT NULL",
            name="ck_verificacion_reubicado_ubicacion",
        ),
        sa.ForeignKeyConstraint(["sesion_id"], ["sesion_inventario.id"]),
        sa.ForeignKeyConstraint(["verificador_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sesion_id", "codigo_patrimonial", name="uq_verificacion_sesion_codigo"),
    )
    with op.batch_alter_table("verificacion_bien", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_verificacion_bien_fecha_verificacion"),
            ["fecha_verificacion"],
            unique=False,
        )
    op.create_index(
        "ix_verificacion_sesion_resultado",
        "verificacion_bien",
        ["sesion_id", "resultado"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_verificacion_sesion_resultado", table_name="verificacion_bien")
    with op.batch_alter_table("verificacion_bien", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_verificacion_bien_fecha_verificacion"))
    op.drop_table("verificacion_bien")
    op.drop_index("ix_sesion_estado_programada", table_name="sesion_inventario")
    op.drop_table("sesion_inventario")
    op.drop_index("ix_historial_documento_fecha", table_name="documento_historial")
    op.drop_table("documento_historial")
    with op.batch_alter_table("archivo_adjunto", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_archivo_adjunto_documento_id"))
    op.drop_table("archivo_adjunto")
    op.drop_index("ix_destino_dependencia_estado", table_name="documento_destino")
    with op.batch_alter_table("documento_destino", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_documento_destino_documento_id"))
    op.drop_table("documento_destino")
    op.drop_index("ix_documento_origen_estado", table_name="documento_tramite")
    op.drop_table("documento_tramite")
    op.drop_table("tipo_documento")
    with op.batch_alter_table("usuario", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_usuario_dependencia_id"))
    op.drop_table("usuario")
    op.drop_table("dependencia")
    op.drop_table("sede")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in [
            "verificacion_dispositivo",
            "verificacion_estado_fisico",
            "verificacion_resultado",
            "sesion_estado",
            "historial_accion",
            "destino_estado_recepcion",
            "documento_prioridad",
            "documento_estado",
            "usuario_rol",
        ]:
            op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))
