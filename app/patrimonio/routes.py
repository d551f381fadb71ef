from __future__ import annotations

from flask import jsonify, request
from flask_login import login_required

from app.core.errors import NotFoundError, ValidationError
from app.patrimonio import patrimonio_bp
from app.patrimonio.catalog import get_asset_catalog


@patrimonio_bp.get("/buscar")
@login_required
def search_assets():
    catalog = get_asset_catalog()
    codigo = request.args.get("codigo", "").strip()
    if codigo:
        snapshot = catalog.find_asset_by_code(codigo)
        if snapshot is None:
            raise NotFoundError(f"Bien {codigo} no registrado en SIGA")
        return jsonify([snapshot.to_dict()])

    filters = {
        "descripcion": request.args.get("descripcion", "").strip() or None,
        "responsable": request.args.get("responsable", "").strip() or None,
        "dependencia_codigo": request.args.get("dependencia", "").strip() or None,
        "sede_codigo": request.args.get("sede", "").strip() or None,
    }
    if not any(filters.values()):
        raise ValidationError("Indique codigo, descripcion o responsable")
    limit = max(1, min(request.args.get("limit", 50, type=int) or 50, 200))
    return jsonify([row.to_dict() for row in catalog.find_assets_by_filter(limit=limit, **filters)])
