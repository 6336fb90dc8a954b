"""Moisture loss (merma) tables.

Official drying-waste tables per grain, published by the Cámara Arbitral de
Cereales, stored in data/moisture_tables.json:

    {"soja": {"product": "Soja", "base_humidity": 13.5, "handling_waste": 0.25,
              "entries": [[13.6, 0.69], [13.7, 0.80], ...]}}

Rules:
1. Waste applies to the delivered quantity (kg)
2. Handling waste applies only when the lot needs drying
3. Humidity is rounded up to the next tenth (15.05% → 15.1%)
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_TABLES_PATH = Path(__file__).resolve().parent / "data" / "moisture_tables.json"

ZERO = Decimal("0")
TENTH = Decimal("0.1")


class MoistureTableError(Exception):
    """Raised when a moisture table file is missing or malformed."""
    pass


def round_up_to_tenth(humidity: Decimal) -> Decimal:
    """Round humidity up to the next 0.1 (15.05 → 15.1, 15.1 → 15.1)."""
    scaled = (humidity * 10).to_integral_value(rounding=ROUND_CEILING)
    return (scaled / 10).quantize(TENTH)


@dataclass(frozen=True)
class MoistureLookup:
    """
    Waste percentages for one humidity reading.

    Attributes:
        rounded_humidity: Table key used; None when no drying applies
        beyond_table: True when the reading was outside the table and the
            last entry was used
    """
    base_humidity: Decimal
    rounded_humidity: Optional[Decimal]
    drying_waste: Decimal
    handling_waste: Decimal
    beyond_table: bool = False

    @property
    def total_waste(self) -> Decimal:
        return self.drying_waste + self.handling_waste

    @property
    def requires_drying(self) -> bool:
        return self.rounded_humidity is not None


@dataclass(frozen=True)
class MoistureLossTable:
    """Drying waste % by humidity for one grain, plus its fixed handling waste."""
    product: str
    display_name: str
    base_humidity: Decimal
    handling_waste: Decimal
    entries: Mapping[Decimal, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    @property
    def max_humidity(self) -> Optional[Decimal]:
        return max(self.entries) if self.entries else None

    def lookup(self, humidity: Decimal) -> MoistureLookup:
        if humidity <= self.base_humidity:
            return MoistureLookup(
                base_humidity=self.base_humidity,
                rounded_humidity=None,
                drying_waste=ZERO,
                handling_waste=ZERO,
            )

        rounded = round_up_to_tenth(humidity)
        drying = self.entries.get(rounded)
        beyond_table = drying is None
        if beyond_table:
            drying = self.entries[self.max_humidity]

        return MoistureLookup(
            base_humidity=self.base_humidity,
            rounded_humidity=rounded,
            drying_waste=drying,
            handling_waste=self.handling_waste,
            beyond_table=beyond_table,
        )


def load_moisture_tables(path: Optional[Path] = None) -> Dict[str, MoistureLossTable]:
    """
    Load moisture tables from JSON.

    Args:
        path: Tables file; defaults to the shipped data/moisture_tables.json

    Returns:
        Tables keyed by canonical product

    Raises:
        MoistureTableError: If the file is missing or a table is malformed
    """
    path = Path(path) if path else DEFAULT_TABLES_PATH
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f, parse_float=Decimal, parse_int=Decimal)
    except FileNotFoundError:
        raise MoistureTableError(f"Moisture tables not found: {path}")
    except json.JSONDecodeError as e:
        raise MoistureTableError(f"Moisture tables are not valid JSON ({path}): {e}")

    tables = {}
    for product, data in raw.items():
        try:
            entries = {Decimal(h).quantize(TENTH): Decimal(w) for h, w in data["entries"]}
            table = MoistureLossTable(
                product=product,
                display_name=data.get("product", product),
                base_humidity=data["base_humidity"],
                handling_waste=data["handling_waste"],
                entries=entries,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MoistureTableError(f"Malformed moisture table {product!r}: {e}")
        if not table.entries:
            raise MoistureTableError(f"Moisture table {product!r} has no entries")
        tables[product] = table

    logger.debug(
        "Loaded moisture tables",
        extra_fields={"path": str(path), "products": sorted(tables)},
    )
    return tables
