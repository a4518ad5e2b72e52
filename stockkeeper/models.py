"""
Entity types using Pydantic models.

Attribute names are English; aliases carry the backend's wire names.
Entities are frozen so cached and optimistic copies cannot be changed in place.
"""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """Business record identified by a stable id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str

    @property
    def display_name(self) -> str:
        return getattr(self, "name", "") or self.id

    @property
    def is_active(self) -> bool:
        return True


class UpdateModel(BaseModel):
    """
    Partial update for one entity type.

    Only fields explicitly set on the patch are merged.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    target: ClassVar[type[Entity]] = Entity

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply(self, item: Entity) -> Entity:
        """Merge this patch field by field into item, returning a new entity."""
        if not isinstance(item, self.target):
            raise TypeError(
                f"{type(self).__name__} cannot be applied to {type(item).__name__}"
            )
        changes = self.changes()
        unknown = set(changes) - set(type(item).model_fields)
        if unknown:
            raise TypeError(f"Unknown fields for {type(item).__name__}: {sorted(unknown)}")
        return item.model_copy(update=changes)


# Materials


class Material(Entity):
    """Raw material (materia prima)."""

    name: str = Field(alias="nombre")
    barcode: str | None = Field(default=None, alias="codigo_barras")
    brand: str | None = Field(default=None, alias="marca")
    category: str | None = Field(default=None, alias="categoria")
    presentation: str | None = Field(default=None, alias="presentacion")
    stock: float = Field(default=0, alias="stock_actual")
    min_stock: float = Field(default=0, alias="stock_minimo")
    unit_cost: float | None = Field(default=None, alias="costo_unitario")
    description: str | None = Field(default=None, alias="descripcion")
    supplier_id: str | None = Field(default=None, alias="proveedor_id")
    status: str = Field(default="ACTIVO", alias="estatus")
    created_at: datetime | None = Field(default=None, alias="creado_en")
    updated_at: datetime | None = Field(default=None, alias="actualizado_en")

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVO"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock


class MaterialCreate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="nombre")
    barcode: str | None = Field(default=None, alias="codigo_barras")
    brand: str | None = Field(default=None, alias="marca")
    category: str | None = Field(default=None, alias="categoria")
    presentation: str | None = Field(default=None, alias="presentacion")
    stock: float = Field(default=0, alias="stock_actual")
    min_stock: float = Field(default=0, alias="stock_minimo")
    unit_cost: float | None = Field(default=None, alias="costo_unitario")
    description: str | None = Field(default=None, alias="descripcion")
    supplier_id: str | None = Field(default=None, alias="proveedor_id")


class MaterialUpdate(UpdateModel):
    target: ClassVar[type[Entity]] = Material

    name: str | None = Field(default=None, alias="nombre")
    barcode: str | None = Field(default=None, alias="codigo_barras")
    brand: str | None = Field(default=None, alias="marca")
    category: str | None = Field(default=None, alias="categoria")
    presentation: str | None = Field(default=None, alias="presentacion")
    stock: float | None = Field(default=None, alias="stock_actual")
    min_stock: float | None = Field(default=None, alias="stock_minimo")
    unit_cost: float | None = Field(default=None, alias="costo_unitario")
    description: str | None = Field(default=None, alias="descripcion")
    supplier_id: str | None = Field(default=None, alias="proveedor_id")
    status: str | None = Field(default=None, alias="estatus")


# Categories


class Category(Entity):
    name: str = Field(alias="nombre")
    description: str | None = Field(default=None, alias="descripcion")
    parent_id: str | None = Field(default=None, alias="id_padre")
    level: int = Field(default=1, alias="nivel")
    active: bool = Field(default=True, alias="activo")

    @property
    def is_active(self) -> bool:
        return self.active


class CategoryCreate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="nombre")
    description: str | None = Field(default=None, alias="descripcion")
    parent_id: str | None = Field(default=None, alias="id_padre")


class CategoryUpdate(UpdateModel):
    target: ClassVar[type[Entity]] = Category

    name: str | None = Field(default=None, alias="nombre")
    description: str | None = Field(default=None, alias="descripcion")
    parent_id: str | None = Field(default=None, alias="id_padre")
    active: bool | None = Field(default=None, alias="activo")


# Presentations


class Presentation(Entity):
    name: str = Field(alias="nombre")
    abbreviation: str | None = Field(default=None, alias="abreviatura")
    description: str | None = Field(default=None, alias="descripcion")
    active: bool = Field(default=True, alias="activo")

    @property
    def is_active(self) -> bool:
        return self.active


class PresentationCreate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="nombre")
    abbreviation: str | None = Field(default=None, alias="abreviatura")
    description: str | None = Field(default=None, alias="descripcion")


class PresentationUpdate(UpdateModel):
    target: ClassVar[type[Entity]] = Presentation

    name: str | None = Field(default=None, alias="nombre")
    abbreviation: str | None = Field(default=None, alias="abreviatura")
    description: str | None = Field(default=None, alias="descripcion")
    active: bool | None = Field(default=None, alias="activo")


class InventoryStatistics(BaseModel):
    """Summary over active materials."""

    total_materials: int = 0
    total_inventory_value: float = 0.0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    category_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
