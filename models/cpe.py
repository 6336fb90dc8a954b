"""Carta de Porte Electrónica (CPE) records produced by extraction.cpe_parser."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import Field

from models.canonical import FrozenBase


class Party(FrozenBase):
    """A CUIT-identified party on a carriage document."""
    cuit: str
    name: str


class ParsedCpe(FrozenBase):
    """Structured CPE. Every field is optional except the warning list."""

    # A - Identification
    cpe_number: Optional[str] = None
    ctg_number: Optional[str] = None
    emission_date: Optional[datetime] = None
    expiration_date: Optional[date] = None

    # Intervinientes
    holder: Optional[Party] = None
    producer_sender: Optional[Party] = None
    primary_sale_sender: Optional[Party] = None
    secondary_sale_sender: Optional[Party] = None
    primary_broker: Optional[Party] = None
    secondary_broker: Optional[Party] = None
    delivery_agent: Optional[Party] = None
    recipient: Optional[Party] = None
    destination_party: Optional[Party] = None
    carrier: Optional[Party] = None
    freight_intermediary: Optional[Party] = None
    freight_payer: Optional[Party] = None
    driver: Optional[Party] = None

    # B - Grain and weights
    grain_type: Optional[str] = None
    grain_subtype: Optional[str] = None
    quality_declaration: Optional[str] = None
    gross_weight_kg: Optional[int] = None
    tare_weight_kg: Optional[int] = None
    net_weight_kg: Optional[int] = None
    campaign: Optional[str] = None
    observations: Optional[str] = None

    # C - Origin
    origin_locality: Optional[str] = None
    origin_province: Optional[str] = None
    origin_is_field: Optional[bool] = None
    origin_latitude: Optional[str] = None
    origin_longitude: Optional[str] = None

    # D - Destination
    destination_plant_number: Optional[str] = None
    destination_locality: Optional[str] = None
    destination_province: Optional[str] = None
    destination_address: Optional[str] = None

    # E - Transport
    truck_plate: Optional[str] = None
    trailer_plate: Optional[str] = None
    departure_date: Optional[datetime] = None
    km_to_travel: Optional[int] = None
    freight_rate: Optional[Decimal] = None

    # G - Discharge
    discharge_date: Optional[datetime] = None

    parse_warnings: List[str] = Field(default_factory=list)


class CpeParseResult(FrozenBase):
    """Outcome of one CpeParser.parse call."""
    success: bool
    cpe: Optional[ParsedCpe] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
