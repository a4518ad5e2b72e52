"""
ErrorClassifier - Maps opaque backend failure text to typed inventory errors.

Classification is an ordered walk over a pattern table:
- Patterns are (matcher, factory, priority) records
- Higher priority wins when several patterns match the same message
- Unmatched messages become GenericError
"""

import re
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Iterable

from loguru import logger

from stockkeeper.services.errors import (
    ConnectionFailureError,
    EntityNotFoundError,
    GenericError,
    InventoryError,
    Layer,
    StockAvailableError,
    ValidationFailureError,
)


@dataclass(frozen=True)
class ErrorContext:
    """Facts known about a failure, from the caller or mined from its message."""

    layer: Layer = Layer.SERVICE
    entity_id: str | None = None
    entity_name: str | None = None
    stock_actual: int | None = None
    field: str | None = None
    value: Any = None
    details: str | None = None

    def merged_over(self, other: "ErrorContext") -> "ErrorContext":
        """Fill unset values from other; values set here take precedence."""
        changes = {
            f.name: getattr(other, f.name)
            for f in fields(self)
            if f.name != "layer" and getattr(self, f.name) is None
        }
        return replace(self, **changes)


ErrorFactory = Callable[[str, ErrorContext], InventoryError]


@dataclass(frozen=True)
class ErrorPattern:
    """One classification rule."""

    name: str
    matcher: re.Pattern[str]
    factory: ErrorFactory
    priority: int


_ID_RE = re.compile(
    r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})|(\d{5,})",
    re.IGNORECASE,
)
_QUANTITY_RE = re.compile(r"(\d+)\s*(unidades|units|items|piezas|pieces)", re.IGNORECASE)
_NAME_RE = re.compile(r"[\"']([^\"']+)[\"']")


def extract_context(message: str) -> ErrorContext:
    """Mine an entity id, a stock quantity and a quoted name from a message."""
    entity_id = None
    stock_actual = None
    entity_name = None

    match_id = _ID_RE.search(message)
    if match_id:
        entity_id = match_id.group(0)

    match_quantity = _QUANTITY_RE.search(message)
    if match_quantity:
        stock_actual = int(match_quantity.group(1))

    match_name = _NAME_RE.search(message)
    if match_name:
        entity_name = match_name.group(1)

    return ErrorContext(
        entity_id=entity_id, stock_actual=stock_actual, entity_name=entity_name
    )


# Factories


def _stock_available(message: str, ctx: ErrorContext) -> InventoryError:
    return StockAvailableError(
        stock_actual=ctx.stock_actual or 0,
        entity_id=ctx.entity_id or "",
        entity_name=ctx.entity_name,
        message=message,
        layer=ctx.layer,
    )


def _stock_referenced(message: str, ctx: ErrorContext) -> InventoryError:
    return StockAvailableError(
        stock_actual=ctx.stock_actual or 1,
        entity_id=ctx.entity_id or "",
        entity_name=ctx.entity_name,
        message=message,
        user_message="No se puede eliminar el material porque tiene referencias de stock",
        suggested_action="Verifique las salidas de material o desactive el material",
        layer=ctx.layer,
    )


def _foreign_key(message: str, ctx: ErrorContext) -> InventoryError:
    # Referencing rows count as stock for the UI
    return StockAvailableError(
        stock_actual=1,
        entity_id=ctx.entity_id or "",
        entity_name=ctx.entity_name or "Material con referencias",
        message=message,
        user_message="No se puede eliminar el material porque tiene referencias asociadas",
        suggested_action="Elimine primero las referencias o desactive el material",
        layer=ctx.layer,
    )


def _not_found(message: str, ctx: ErrorContext) -> InventoryError:
    return EntityNotFoundError(
        entity_id=ctx.entity_id or "", message=message, layer=ctx.layer
    )


def _record_not_found(message: str, ctx: ErrorContext) -> InventoryError:
    return EntityNotFoundError(
        entity_id=ctx.entity_id or "",
        message=message,
        user_message="No se encontró el registro del material",
        suggested_action="El material puede haber sido eliminado por otro usuario",
        layer=ctx.layer,
    )


def _connection(message: str, ctx: ErrorContext) -> InventoryError:
    return ConnectionFailureError(
        details=ctx.details or message,
        message=message,
        user_message="Error de conexión con la base de datos",
        layer=ctx.layer,
    )


def _connection_lost(message: str, ctx: ErrorContext) -> InventoryError:
    return ConnectionFailureError(
        details=ctx.details or message,
        message=message,
        user_message="Se perdió la conexión con la base de datos",
        suggested_action="Reinicie la aplicación o verifique la conexión",
        layer=ctx.layer,
    )


def _required_field(message: str, ctx: ErrorContext) -> InventoryError:
    return ValidationFailureError(
        field=ctx.field or "desconocido",
        value=ctx.value,
        message=message,
        user_message="Hay campos obligatorios que no han sido completados",
        suggested_action="Complete todos los campos requeridos",
        layer=ctx.layer,
    )


def _invalid_format(message: str, ctx: ErrorContext) -> InventoryError:
    return ValidationFailureError(
        field=ctx.field or "desconocido",
        value=ctx.value,
        message=message,
        user_message="El formato de los datos ingresados no es válido",
        suggested_action="Verifique el formato de los datos ingresados",
        layer=ctx.layer,
    )


def _pattern(regex: str) -> re.Pattern[str]:
    return re.compile(regex, re.IGNORECASE)


DEFAULT_PATTERNS: tuple[ErrorPattern, ...] = (
    ErrorPattern(
        name="STOCK_DISPONIBLE",
        matcher=_pattern(
            r"no se puede eliminar.*stock.*disponible|no puede eliminar.*stock"
            r"|material con stock|existen unidades|cannot delete.*stock|has stock"
        ),
        factory=_stock_available,
        priority=10,
    ),
    ErrorPattern(
        name="STOCK_REFERENCIADO",
        matcher=_pattern(r"referencia.*stock|stock.*referencia|dependencias.*stock"),
        factory=_stock_referenced,
        priority=9,
    ),
    ErrorPattern(
        name="MATERIAL_NO_ENCONTRADO",
        matcher=_pattern(r"no encontrad[oa]|not found|no existe"),
        factory=_not_found,
        priority=8,
    ),
    # Shadowed by MATERIAL_NO_ENCONTRADO at these priorities; register() a
    # copy with priority > 8 to get its record-specific messages
    ErrorPattern(
        name="REGISTRO_NO_ENCONTRADO",
        matcher=_pattern(r"registro.*no encontrado|record.*not found|fila.*no existe"),
        factory=_record_not_found,
        priority=7,
    ),
    ErrorPattern(
        name="CONEXION_DATABASE",
        matcher=_pattern(
            r"connection|database|timeout|conexión|conexion|base de datos"
            r"|econnrefused|enotfound"
        ),
        factory=_connection,
        priority=6,
    ),
    ErrorPattern(
        name="CONEXION_PERDIDA",
        matcher=_pattern(r"connection.*lost|conexión.*perdida|disconnect|se desconectó"),
        factory=_connection_lost,
        priority=5,
    ),
    ErrorPattern(
        name="VALIDACION_CAMPO_VACIO",
        matcher=_pattern(r"campo.*vacío|field.*empty|required.*missing|obligatorio"),
        factory=_required_field,
        priority=4,
    ),
    ErrorPattern(
        name="VALIDACION_FORMATO",
        matcher=_pattern(r"formato.*inválido|invalid.*format|invalid.*input"),
        factory=_invalid_format,
        priority=3,
    ),
    ErrorPattern(
        name="RESTRICCION_FORANEA",
        matcher=_pattern(r"foreign.*key|constraint.*violation|llave.*foránea|referencia"),
        factory=_foreign_key,
        priority=2,
    ),
)


class ErrorClassifier:
    """
    Pattern-table interpreter producing typed inventory errors.

    Usage:
        classifier = ErrorClassifier()
        error = classifier.classify(exc, ErrorContext(entity_id="m1"))
        raise error from exc
    """

    def __init__(self, patterns: Iterable[ErrorPattern] = DEFAULT_PATTERNS):
        self._patterns: list[ErrorPattern] = []
        for pattern in patterns:
            self.register(pattern)

    @property
    def patterns(self) -> list[ErrorPattern]:
        """Patterns in evaluation order."""
        return list(self._patterns)

    def register(self, pattern: ErrorPattern) -> None:
        """Add a pattern, replacing any existing pattern with the same name."""
        self._patterns = [p for p in self._patterns if p.name != pattern.name]
        self._patterns.append(pattern)
        # sort is stable: equal priorities keep registration order
        self._patterns.sort(key=lambda p: p.priority, reverse=True)

    def get_pattern(self, name: str) -> ErrorPattern | None:
        for pattern in self._patterns:
            if pattern.name == name:
                return pattern
        return None

    def classify(
        self,
        raw: BaseException | str,
        context: ErrorContext | None = None,
        layer: Layer = Layer.SERVICE,
    ) -> InventoryError:
        """
        Classify a raw failure.

        Args:
            raw: Exception (or bare message) coming from the transport
            context: Facts known by the caller, preferred over mined ones
            layer: Layer stamped on the resulting error

        Returns:
            A typed InventoryError, GenericError if no pattern matched
        """
        if isinstance(raw, InventoryError):
            return raw.with_layer(layer)

        message = raw if isinstance(raw, str) else str(raw)
        caller = replace(context or ErrorContext(), layer=Layer(layer))
        full_context = caller.merged_over(extract_context(message))

        lowered = message.lower()
        for pattern in self._patterns:
            if not pattern.matcher.search(lowered):
                continue
            try:
                return pattern.factory(message, full_context)
            except Exception as e:
                logger.warning(
                    f"[ErrorClassifier] Factory for pattern {pattern.name} failed: {e}"
                )
                continue

        return GenericError(original_message=message, layer=layer)

    def process(self, raw: BaseException | str, layer: Layer = Layer.SERVICE) -> InventoryError:
        """Classify using only the context mined from the message."""
        return self.classify(raw, None, layer)


__all__ = [
    "DEFAULT_PATTERNS",
    "ErrorClassifier",
    "ErrorContext",
    "ErrorPattern",
    "extract_context",
]
