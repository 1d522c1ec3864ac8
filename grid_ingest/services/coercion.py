from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd

"""Per-field type coercion for ingest records.

Field types come from an explicit lookup table (field name -> FieldType), so a
new field is added by configuration rather than code. Fields not in the table
are TEXT.

Null handling runs before any typed rule: None, blank, the literal ``null``
(any case) and configured sentinels all become None. Blank cells, cells a
selection did not cover, and values that fail numeric/date parsing are all
None in the coerced record; they are not distinguished downstream.
"""

__all__ = [
    "FieldType",
    "CoercionPolicy",
    "DEFAULT_FIELD_TYPES",
    "DEFAULT_TRUTH_TOKENS",
    "coerce_value",
    "coerce_row",
]


class FieldType(Enum):
    IDENTIFIER = "identifier"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TEXT = "text"


DEFAULT_TRUTH_TOKENS = frozenset({"true", "1", "si", "sí", "verdadero", "yes"})

# Field names used by the sales / catalog tables the tool was built for.
DEFAULT_FIELD_TYPES: dict[str, FieldType] = {
    # identifiers: kept as text so leading zeros survive
    "sku": FieldType.IDENTIFIER,
    "sku_mdr": FieldType.IDENTIFIER,
    "item_id": FieldType.IDENTIFIER,
    "numero_venta": FieldType.IDENTIFIER,
    "num_venta": FieldType.IDENTIFIER,
    "num_publi": FieldType.IDENTIFIER,
    # numeric
    **{
        name: FieldType.NUMBER
        for name in (
            "costo", "tiempo_preparacion", "unidades", "precio_unitario", "total",
            "piezas_por_sku", "tiempo_produccion", "publicaciones", "tiempo_recompra",
            "dinero_a_favor", "monto", "price", "landed_cost", "costo_envio",
            "num_publicaciones", "piezas_totales", "esti_time", "piezas_xcontenedor",
            "bloque", "ing_xunidad", "cargo_venta", "ing_xenvio", "costo_enviomp",
            "cargo_difpeso", "anu_reembolsos", "unidades_2", "unidades_3", "d_afavor",
        )
    },
    # boolean
    **{
        name: FieldType.BOOLEAN
        for name in (
            "es_paquete_varios", "pertenece_kit", "venta_publicidad", "negocio",
            "revisado_por_ml", "reclamo_abierto", "reclamo_cerrado", "con_mediacion",
            "venta_xpublicidad", "paquete_varios", "r_abierto", "r_cerrado",
            "c_mediacion", "es_fijo", "es_recurrente",
        )
    },
    # date
    **{
        name: FieldType.DATE
        for name in (
            "fecha_venta", "fecha_en_camino", "fecha_entregado", "created_at",
            "fecha_registro", "fecha_en_camino_envio", "fecha_entregado_envio",
            "fecha_revision", "fecha", "fecha_desde",
        )
    },
}

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True)
class CoercionPolicy:
    """Field-name -> FieldType table plus the token sets the rules use.

    null_sentinels are compared upper-cased and stripped.
    """
    field_types: Mapping[str, FieldType] = field(default_factory=lambda: dict(DEFAULT_FIELD_TYPES))
    truth_tokens: frozenset[str] = DEFAULT_TRUTH_TOKENS
    null_sentinels: frozenset[str] = frozenset()
    dayfirst: bool = False

    def type_of(self, field_name: str) -> FieldType:
        return self.field_types.get(field_name, FieldType.TEXT)

    def with_overrides(
        self,
        field_types: Mapping[str, FieldType] | None = None,
        truth_tokens: Iterable[str] | None = None,
        null_sentinels: Iterable[str] | None = None,
        dayfirst: bool | None = None,
    ) -> CoercionPolicy:
        """New policy with the given entries merged over this one."""
        merged = dict(self.field_types)
        if field_types:
            merged.update(field_types)
        return CoercionPolicy(
            field_types=merged,
            truth_tokens=(
                frozenset(t.strip().lower() for t in truth_tokens)
                if truth_tokens is not None
                else self.truth_tokens
            ),
            null_sentinels=(
                self.null_sentinels | {s.strip().upper() for s in null_sentinels}
                if null_sentinels is not None
                else self.null_sentinels
            ),
            dayfirst=self.dayfirst if dayfirst is None else dayfirst,
        )


def _is_null(value: Any, policy: CoercionPolicy) -> bool:
    if value is None:
        return True
    text = str(value).strip()
    if text == "" or text.lower() == "null":
        return True
    return text.upper() in policy.null_sentinels


def _to_number(text: str) -> float | None:
    cleaned = _NON_NUMERIC_RE.sub("", text.replace(",", ""))
    try:
        return float(cleaned)
    except ValueError:
        return None


def _to_date(text: str, dayfirst: bool) -> str | None:
    # pandas reads "now", "today", "yesterday" as the current clock; a date needs digits
    if not _DIGIT_RE.search(text):
        return None
    try:
        ts = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.isoformat()


def coerce_value(field_name: str, value: Any, policy: CoercionPolicy) -> Any:
    """Coerce one raw cell for ``field_name`` according to the policy."""
    if _is_null(value, policy):
        return None
    text = str(value).strip()
    kind = policy.type_of(field_name)
    if kind is FieldType.NUMBER:
        return _to_number(text)
    if kind is FieldType.BOOLEAN:
        return text.lower() in policy.truth_tokens
    if kind is FieldType.DATE:
        return _to_date(text, policy.dayfirst)
    # IDENTIFIER and TEXT
    return text


def coerce_row(headers: list[str], row: list[str], policy: CoercionPolicy) -> dict[str, Any]:
    """One table row -> ingest record. Blank headers are not written."""
    record: dict[str, Any] = {}
    for header, value in zip(headers, row, strict=False):
        if not header:
            continue
        record[header] = coerce_value(header, value, policy)
    return record
