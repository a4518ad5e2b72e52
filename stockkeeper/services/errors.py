"""
Service layer exceptions.

Every failure that leaves a facade is one of the InventoryError kinds below.
The UI renders ``user_message`` and ``suggested_action``; ``message`` and
``correlation_id`` are meant for logs.
"""

import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Error kinds."""

    STOCK_AVAILABLE = "STOCK_DISPONIBLE"
    ENTITY_NOT_FOUND = "MATERIAL_NO_ENCONTRADO"
    CONNECTION_FAILURE = "CONEXION_DATABASE"
    VALIDATION_FAILURE = "VALIDACION_ERROR"
    GENERIC = "ERROR_GENERICO"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class Layer(str, Enum):
    """Layer that last handled an error."""

    SERVICE = "service"
    HOOK = "hook"
    COMPONENT = "component"


def generate_correlation_id() -> str:
    """Create an opaque id used to trace one error across layers and logs."""
    return f"err_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class InventoryError(Exception):
    """Base exception for typed inventory errors."""

    type: ErrorType = ErrorType.GENERIC
    severity: Severity = Severity.ERROR
    user_message: str = "Ha ocurrido un error inesperado"
    suggested_action: str = "Intente nuevamente o contacte soporte técnico"

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        suggested_action: str | None = None,
        severity: Severity | None = None,
        layer: Layer = Layer.SERVICE,
    ):
        self.message = message
        if user_message is not None:
            self.user_message = user_message
        if suggested_action is not None:
            self.suggested_action = suggested_action
        if severity is not None:
            self.severity = severity
        self.layer = Layer(layer)
        self.timestamp = datetime.now()
        self.correlation_id = generate_correlation_id()
        super().__init__(message)

    def with_layer(self, layer: Layer) -> "InventoryError":
        """Return a copy stamped with another layer, keeping type and correlation id."""
        restamped = type(self).__new__(type(self))
        restamped.__dict__.update(self.__dict__)
        restamped.args = self.args
        restamped.layer = Layer(layer)
        return restamped

    def _extra(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "message": self.message,
            "user_message": self.user_message,
            "suggested_action": self.suggested_action,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "layer": self.layer.value,
            "correlation_id": self.correlation_id,
            **self._extra(),
        }


class StockAvailableError(InventoryError):
    """Entity cannot be deleted while it still holds stock or references."""

    type = ErrorType.STOCK_AVAILABLE
    severity = Severity.WARNING
    user_message = "No se puede eliminar el material porque tiene stock disponible"
    suggested_action = (
        "Primero debe realizar las salidas correspondientes para agotar el stock"
    )

    def __init__(
        self,
        stock_actual: int | float,
        entity_id: str,
        entity_name: str | None = None,
        message: str | None = None,
        **kwargs: Any,
    ):
        self.stock_actual = stock_actual
        self.entity_id = entity_id
        self.entity_name = entity_name or "Material sin identificar"
        super().__init__(
            message
            or f"No se puede eliminar el material con {stock_actual} unidades en stock",
            **kwargs,
        )

    def _extra(self) -> dict[str, Any]:
        return {
            "stock_actual": self.stock_actual,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
        }


class EntityNotFoundError(InventoryError):
    """Requested entity does not exist."""

    type = ErrorType.ENTITY_NOT_FOUND
    user_message = "El material no existe en el sistema"
    suggested_action = "Verifique el ID del material o recargue la lista"

    def __init__(self, entity_id: str, message: str | None = None, **kwargs: Any):
        self.entity_id = entity_id
        super().__init__(message or f"Material con ID {entity_id} no encontrado", **kwargs)

    def _extra(self) -> dict[str, Any]:
        return {"entity_id": self.entity_id}


class ConnectionFailureError(InventoryError):
    """Backend could not be reached."""

    type = ErrorType.CONNECTION_FAILURE
    user_message = "No se puede conectar con la base de datos"
    suggested_action = "Verifique su conexión e intente nuevamente"

    def __init__(
        self, details: str | None = None, message: str | None = None, **kwargs: Any
    ):
        self.details = details
        super().__init__(message or "Error de conexión con la base de datos", **kwargs)

    def _extra(self) -> dict[str, Any]:
        return {"details": self.details}


class ValidationFailureError(InventoryError):
    """Submitted data was rejected."""

    type = ErrorType.VALIDATION_FAILURE
    severity = Severity.WARNING
    suggested_action = "Corrija los datos ingresados"

    def __init__(self, field: str, value: Any, message: str, **kwargs: Any):
        self.field = field
        self.value = value
        kwargs.setdefault("user_message", f"Error de validación en el campo {field}")
        super().__init__(message, **kwargs)

    def _extra(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value}


class GenericError(InventoryError):
    """Failure that matched no known pattern."""

    type = ErrorType.GENERIC

    def __init__(
        self,
        original_message: str | None = None,
        message: str | None = None,
        **kwargs: Any,
    ):
        self.original_message = original_message
        super().__init__(message or "Error al procesar la solicitud", **kwargs)

    def _extra(self) -> dict[str, Any]:
        return {"original_message": self.original_message}


def is_inventory_error(error: object) -> bool:
    """Check if an object is any typed inventory error."""
    return isinstance(error, InventoryError)
