"""notificaciones de tramite

Revision ID: b7d2e4f6a8c1
Revises: a3f1c9e7d2b4
Create Date: 2026-10-26 09:15:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7d2e4f6a8c1"
down_revision = "a3f1c9e7d2b4"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "notificacion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("documento_id", sa.Integer(), nullable=True),
        sa.Column(
            "tipo",
            sa.Enum("DOCUMENTO_RECIBIDO", "DOCUMENTO_DERIVADO", name="notificacion_tipo"),
            nullable=False,
        ),
        sa.Column("titulo", sa.String(length=160), nullable=False),
        sa.Column("mensaje", sa.String(length=500), nullable=False),
        sa.Column("leida", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["documento_id"], ["documento_tramite.id"]),
        sa.ForeignKeyConstraint(["usuario_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("notificacion", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_notificacion_documento_id"), ["documento_id"], unique=False)
    op.create_index("ix_notificacion_usuario_leida", "notificacion", ["usuario_id", "leida"], unique=False)


def downgrade():
    op.drop_index("ix_notificacion_usuario_leida", table_name="notificacion")
    with op.batch_alter_table("notificacion", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_notificacion_documento_id"))
    op.drop_table("notificacion")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        sa.Enum(name="notificacion_tipo").drop(bind, checkfirst=True)
