"""Read-only access to the patrimony master data (SIGA).

The inventory services never query ``BienPatrimonial`` directly: they go
through an :class:`AssetCatalog`, stored in ``app.extensions["asset_catalog"]``,
so a live SIGA connection or a stub can be plugged in without touching the
reconciliation rules.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
import logging

from flask import Flask, current_app
from sqlalchemy import or_
from sqlalchemy.exc import OperationalError

from app.core.errors import CatalogUnavailableError
from app.core.models import BienPatrimonial

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetSnapshot:
    codigo_patrimonial: str
    descripcion: str
    marca: str | None = None
    modelo: str | None = None
    serie: str | None = None
    color: str | None = None
    dependencia_codigo: str | None = None
    nombre_depend: str | None = None
    sede_codigo: str | None = None
    ubicacion_fisica: str | None = None
    responsable: str | None = None
    usuario: str | None = None
    valor_neto: Decimal | None = None

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["valor_neto"] = str(self.valor_neto) if self.valor_neto is not None else None
        return data


class AssetCatalog:
    def find_asset_by_code(self, codigo: str) -> AssetSnapshot | None:
        raise NotImplementedError

    def find_assets_by_filter(
        self,
        descripcion: str | None = None,
        responsable: str | None = None,
        dependencia_codigo: str | None = None,
        sede_codigo: str | None = None,
        limit: int = 50,
    ) -> list[AssetSnapshot]:
        raise NotImplementedError

    def count_assets(self, dependencia_codigo: str | None = None, sede_codigo: str | None = None) -> int:
        raise NotImplementedError


def _snapshot(bien: BienPatrimonial) -> AssetSnapshot:
    return AssetSnapshot(
        codigo_patrimonial=bien.codigo_patrimonial,
        descripcion=bien.descripcion,
        marca=bien.marca,
        modelo=bien.modelo,
        serie=bien.serie,
        color=bien.color,
        dependencia_codigo=bien.dependencia_codigo,
        nombre_depend=bien.nombre_depend,
        sede_codigo=bien.sede_codigo,
        ubicacion_fisica=bien.ubicacion_fisica,
        responsable=bien.responsable,
        usuario=bien.usuario,
        valor_neto=bien.valor_neto,
    )


class SigaAssetCatalog(AssetCatalog):
    """Catalog backed by the ``siga`` SQLAlchemy bind."""

    def _scoped(self, dependencia_codigo: str | None, sede_codigo: str | None):
        query = BienPatrimonial.query.filter(BienPatrimonial.activo.is_(True))
        if dependencia_codigo:
            query = query.filter(BienPatrimonial.dependencia_codigo == dependencia_codigo)
        if sede_codigo:
            query = query.filter(BienPatrimonial.sede_codigo == sede_codigo)
        return query

    def find_asset_by_code(self, codigo: str) -> AssetSnapshot | None:
        try:
            bien = self._scoped(None, None).filter(BienPatrimonial.codigo_patrimonial == codigo).first()
        except OperationalError as exc:
            logger.error("SIGA lookup failed for codigo=%s: %s", codigo, exc)
            raise CatalogUnavailableError("No se pudo conectar al catalogo patrimonial (SIGA)") from exc
        return _snapshot(bien) if bien else None

    def find_assets_by_filter(
        self,
        descripcion: str | None = None,
        responsable: str | None = None,
        dependencia_codigo: str | None = None,
        sede_codigo: str | None = None,
        limit: int = 50,
    ) -> list[AssetSnapshot]:
        query = self._scoped(dependencia_codigo, sede_codigo)
        if descripcion:
            query = query.filter(BienPatrimonial.descripcion.ilike(f"%{descripcion}%"))
        if responsable:
            like = f"%{responsable}%"
            query = query.filter(
                or_(
                    BienPatrimonial.responsable.ilike(like),
                    BienPatrimonial.responsable_documento == responsable,
                )
            )
        try:
            rows = query.order_by(BienPatrimonial.codigo_patrimonial.asc()).limit(limit).all()
        except OperationalError as exc:
            logger.error("SIGA search failed: %s", exc)
            raise CatalogUnavailableError("No se pudo conectar al catalogo patrimonial (SIGA)") from exc
        return [_snapshot(row) for row in rows]

    def count_assets(self, dependencia_codigo: str | None = None, sede_codigo: str | None = None) -> int:
        try:
            return self._scoped(dependencia_codigo, sede_codigo).count()
        except OperationalError as exc:
            logger.error("SIGA count failed: %s", exc)
            raise CatalogUnavailableError("No se pudo conectar al catalogo patrimonial (SIGA)") from exc


def init_asset_catalog(app: Flask, catalog: AssetCatalog | None = None) -> None:
    app.extensions["asset_catalog"] = catalog or SigaAssetCatalog()


def get_asset_catalog() -> AssetCatalog:
    return current_app.extensions["asset_catalog"]
