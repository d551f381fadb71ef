from flask import Blueprint

inventario_bp = Blueprint("inventario", __name__, url_prefix="/inventario")

from app.inventario import routes  # noqa: E402,F401
