"""
In-memory transport used in development mode and tests.

Behaves like the backend: wire field names, soft delete, Spanish error
messages.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from loguru import logger

from stockkeeper.transport.base import BaseTransport, TransportError

SAMPLE_MATERIALS: list[dict[str, Any]] = [
    {
        "id": "1",
        "nombre": "Cemento Gris",
        "marca": "Holcim",
        "categoria": "Construcción",
        "presentacion": "Saco 50kg",
        "stock_actual": 150,
        "stock_minimo": 50,
        "codigo_barras": "1234567890123",
        "costo_unitario": 125.50,
        "descripcion": "Cemento Portland de alta resistencia para construcción",
        "proveedor_id": "prov-001",
        "estatus": "ACTIVO",
    },
    {
        "id": "2",
        "nombre": "Ladrillo Rojo",
        "marca": "Ladrillera",
        "categoria": "Construcción",
        "presentacion": "Pieza",
        "stock_actual": 500,
        "stock_minimo": 200,
        "codigo_barras": "2345678901234",
        "costo_unitario": 8.75,
        "descripcion": "Ladrillo rojo estándar para muros",
        "proveedor_id": "prov-002",
        "estatus": "ACTIVO",
    },
    {
        "id": "3",
        "nombre": "Pintura Blanca",
        "marca": "Sika",
        "categoria": "Pinturas",
        "presentacion": "Galón 3.78L",
        "stock_actual": 8,
        "stock_minimo": 10,
        "codigo_barras": "3456789012345",
        "costo_unitario": 45.00,
        "descripcion": "Pintura látex interior color blanco mate",
        "proveedor_id": "prov-003",
        "estatus": "ACTIVO",
    },
]


class MemoryTransport(BaseTransport):
    """Dict-backed transport for one collection."""

    def __init__(
        self,
        resource: str,
        records: list[dict[str, Any]] | None = None,
        entity_label: str = "Material",
        status_field: str = "estatus",
    ):
        self._resource = resource
        self._label = entity_label
        self._status_field = status_field
        self._records: dict[str, dict[str, Any]] = {
            str(r["id"]): dict(r) for r in (records or [])
        }

    @property
    def resource(self) -> str:
        return self._resource

    async def list(
        self, filters: dict[str, Any] | None = None, include_inactive: bool = False
    ) -> list[dict[str, Any]]:
        records = [
            dict(r)
            for r in self._records.values()
            if include_inactive or self._is_active(r)
        ]
        for key, expected in (filters or {}).items():
            records = [r for r in records if _matches(r.get(key), expected)]
        return records

    async def get(self, id: str, include_inactive: bool = False) -> dict[str, Any]:
        record = self._records.get(id)
        if record is None or (not include_inactive and not self._is_active(record)):
            raise TransportError(f"{self._label} {id} no encontrado", self._resource)
        return dict(record)

    async def create(
        self, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]:
        if not data.get("nombre"):
            raise TransportError("El campo nombre es obligatorio", self._resource)

        now = datetime.now().isoformat()
        record = {
            **data,
            "id": str(uuid.uuid4()),
            "creado_en": now,
            "actualizado_en": now,
        }
        record.setdefault(self._status_field, self._active_value)
        self._records[record["id"]] = record
        logger.debug(f"[MemoryTransport] {self._resource} created {record['id']} by {actor_id}")
        return dict(record)

    async def update(
        self, id: str, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]:
        record = self._records.get(id)
        if record is None:
            raise TransportError(f"{self._label} {id} no encontrado", self._resource)

        record.update(data)
        record["actualizado_en"] = datetime.now().isoformat()
        return dict(record)

    async def delete(self, id: str, actor_id: str | None = None) -> bool:
        record = self._records.get(id)
        if record is None:
            raise TransportError(f"{self._label} {id} no encontrado", self._resource)

        stock = record.get("stock_actual") or 0
        if stock > 0:
            raise TransportError(
                f"No se puede eliminar el material '{record.get('nombre')}' "
                f"con {int(stock)} unidades en stock disponible",
                self._resource,
            )

        # Soft delete, as the backend does
        record[self._status_field] = self._inactive_value
        return True

    async def search(self, term: str, limit: int = 50) -> list[dict[str, Any]]:
        lowered = term.lower()
        found = [
            dict(r)
            for r in self._records.values()
            if self._is_active(r)
            and (
                lowered in str(r.get("nombre", "")).lower()
                or lowered in str(r.get("marca") or "").lower()
                or term in str(r.get("codigo_barras") or "")
            )
        ]
        return found[:limit]

    @property
    def _active_value(self) -> Any:
        return "ACTIVO" if self._status_field == "estatus" else True

    @property
    def _inactive_value(self) -> Any:
        return "INACTIVO" if self._status_field == "estatus" else False

    def _is_active(self, record: dict[str, Any]) -> bool:
        return record.get(self._status_field, self._active_value) == self._active_value

    async def low_stock(self) -> list[dict[str, Any]]:
        return [
            dict(r)
            for r in self._records.values()
            if self._is_active(r)
            and "stock_actual" in r
            and r["stock_actual"] <= r.get("stock_minimo", 0)
        ]


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(value, str) and isinstance(expected, str):
        return expected.lower() in value.lower()
    return value == expected
