from flask import Blueprint

tramite_bp = Blueprint("tramite", __name__, url_prefix="/tramite")

from app.tramite import routes  # noqa: E402,F401
