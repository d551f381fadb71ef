from flask import Blueprint

patrimonio_bp = Blueprint("patrimonio", __name__, url_prefix="/patrimonio")

from app.patrimonio import routes  # noqa: E402,F401
