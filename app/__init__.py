from __future__ import annotations

import click
import logging

from flask import Flask, jsonify

from app.core.auth import auth_bp
from app.core.config import Config
from app.core.errors import register_error_handlers
from app.core.extensions import db, login_manager, migrate
from app.core.models import SesionInventario, Usuario, seed_demo_data
from app.core.tenancy import load_actor_context
from app.inventario import inventario_bp
from app.patrimonio import patrimonio_bp
from app.patrimonio.catalog import init_asset_catalog
from app.tramite import tramite_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    init_asset_catalog(app)

    app.before_request(load_actor_context)
    register_error_handlers(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(tramite_bp)
    app.register_blueprint(inventario_bp)
    app.register_blueprint(patrimonio_bp)

    register_cli(app)
    register_routes(app)
    return app


def _configure_logging(app: Flask) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    package_logger = logging.getLogger("app")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        package_logger.addHandler(handler)


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return jsonify({"app": "unamad-patrimonio", "modulos": ["tramite", "inventario", "patrimonio"]})


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo dependencies, users, document types and SIGA assets."""
        if reset:
            db.drop_all()
            db.create_all()
        if not Usuario.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("inventario-recount")
    @click.option("--session-id", type=int, default=None, help="Inventory session to reconcile.")
    @click.option("--all", "all_sessions", is_flag=True, help="Reconcile every inventory session.")
    def inventario_recount(session_id: int | None, all_sessions: bool) -> None:
        """Rebuild inventory session counters from their verification rows."""
        from app.inventario.services import recount_session_counters

        if session_id is None and not all_sessions:
            raise click.UsageError("Use --session-id or --all.")
        if all_sessions:
            session_ids = [row.id for row in SesionInventario.query.order_by(SesionInventario.id.asc()).all()]
        else:
            session_ids = [session_id]
        if not session_ids:
            click.echo("No inventory sessions found.")
            return

        for sid in session_ids:
            result = recount_session_counters(sid)
            changed = "updated" if result["antes"] != result["despues"] else "ok"
            click.echo(
                f"[{sid}] {changed} verificados={result['despues']['total_verificados']} "
                f"encontrados={result['despues']['total_encontrados']} "
                f"sobrantes={result['despues']['total_sobrantes']}"
            )


@login_manager.user_loader
def load_user(user_id: str) -> Usuario | None:
    return db.session.get(Usuario, int(user_id))
