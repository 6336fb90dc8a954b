"""Canonical data models - settlement documents as delivered by upstream extraction.

The field names follow the printed C1116 "Liquidación Primaria de Granos"
form, because that is how the upstream field extractor emits them. Everything
downstream (models.settlement, models.cpe, models.quality) uses English names.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle Argentine number/date formats from extraction)
# =============================================================================

def normalize_number_text(text: str) -> str:
    """Normalize "1.234,56", "1234,56" or "1,234.56" to "1234.56"."""
    s = text.strip().replace("$", "").replace(" ", "")
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".") if s.count(",") == 1 else s.replace(",", "")
    return s


def parse_number(text: Optional[str]) -> Optional[Decimal]:
    """Parse a number as printed on settlement documents; None if unparseable."""
    if text is None:
        return None
    s = normalize_number_text(text)
    if s == "":
        return None
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def _parse_decimal(value):
    """Parse decimal from strings, ints and floats."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            return Decimal(normalize_number_text(s))
        except InvalidOperation:
            raise ValueError(f"Cannot parse number: {value}")
    return value


def _parse_date(value):
    """Parse date from DD/MM/YYYY and ISO formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y %H:%M", "%d/%m/%Y %H:%M:%S"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


# Annotated types for automatic parsing
DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


# =============================================================================
# Base Models
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for upstream (input) data structures."""
    model_config = ConfigDict(populate_by_name=True)


class FrozenBase(BaseModel):
    """Base model for computed results; immutable once built."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Settlement Document (C1116 form)
# =============================================================================

class DocumentParty(CanonicalBase):
    """Buyer or seller block."""
    razon_social: str = ""
    cuit: str = ""
    domicilio: Optional[str] = None
    localidad: Optional[str] = None
    iva: Optional[str] = None
    ingresos_brutos: Optional[str] = None


class DocumentBroker(CanonicalBase):
    """Broker block; only present when a broker took part."""
    razon_social: str = ""
    cuit: str = ""
    actuo: Optional[str] = None


class OperationConditions(CanonicalBase):
    """Condiciones de la operación."""
    fecha: Optional[DateValue] = None
    precio_tn: Optional[DecimalValue] = None
    grado: Optional[str] = None
    grano: Optional[str] = None
    flete_tn: Optional[DecimalValue] = None
    puerto: Optional[str] = None


class DeliveredGoods(CanonicalBase):
    """One CTG row of "Mercadería entregada"."""
    numero_comprobante: str
    grado: Optional[str] = None
    factor: Optional[DecimalValue] = None
    contenido_proteico: Optional[DecimalValue] = None
    peso_kg: DecimalValue
    procedencia: Optional[str] = None


class Operation(CanonicalBase):
    """Operación block. cantidad_kg is required: zero is meaningful."""
    cantidad_kg: DecimalValue
    precio_kg: Optional[DecimalValue] = None
    subtotal: DecimalValue
    alicuota_iva: Optional[DecimalValue] = None
    importe_iva: Optional[DecimalValue] = None
    operacion_con_iva: Optional[DecimalValue] = None
    grado: Optional[str] = None
    grano: Optional[str] = None


class DocumentDeduction(CanonicalBase):
    concepto: str = ""
    detalle: str = ""
    porcentaje: Optional[DecimalValue] = None
    base_calculo: Optional[DecimalValue] = None
    alicuota: Optional[DecimalValue] = None
    importe_iva: Optional[DecimalValue] = None
    deducciones: DecimalValue = Decimal("0")


class DocumentWithholding(CanonicalBase):
    concepto: str = ""
    detalle: str = ""
    certificado_retencion: Optional[str] = None
    importe_certificado: Optional[DecimalValue] = None
    fecha_certificado: Optional[DateValue] = None
    base_calculo: Optional[DecimalValue] = None
    alicuota: Optional[DecimalValue] = None
    retenciones: DecimalValue = Decimal("0")


class DocumentTotals(CanonicalBase):
    """Importes totales de la liquidación."""
    total_operacion: Optional[DecimalValue] = None
    total_percepciones: Optional[DecimalValue] = None
    total_retenciones_afip: Optional[DecimalValue] = None
    total_otras_retenciones: Optional[DecimalValue] = None
    total_deducciones: Optional[DecimalValue] = None
    importe_neto_pagar: DecimalValue
    iva_diferido: Optional[DecimalValue] = None
    iva_diferido_resolucion: Optional[str] = None
    pago_segun_condiciones: Optional[DecimalValue] = None


class SettlementDocument(CanonicalBase):
    """Complete settlement document as extracted upstream."""
    coe: str
    tipo_operacion: str = ""
    actividad: str = ""
    fecha: DateValue
    comprador: DocumentParty = Field(default_factory=DocumentParty)
    vendedor: DocumentParty = Field(default_factory=DocumentParty)
    corredor: Optional[DocumentBroker] = None
    condiciones_operacion: OperationConditions = Field(default_factory=OperationConditions)
    mercaderia_entregada: List[DeliveredGoods] = Field(default_factory=list)
    operacion: Operation
    deducciones: List[DocumentDeduction] = Field(default_factory=list)
    retenciones: List[DocumentWithholding] = Field(default_factory=list)
    importes_totales: DocumentTotals
    datos_adicionales: str = ""
