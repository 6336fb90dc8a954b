"""CPE (Carta de Porte Electrónica) text parser.

Turns the text layer of a CPE into a ParsedCpe. Every field extractor is
tolerant: a missing field adds a warning and yields None, and parsing always
completes. Only an unexpected internal error produces success=False.

The document is organized in lettered sections which bound most searches:
    A - identification and parties
    B - GRANO / ESPECIE (grain and weights)
    C - PROCEDENCIA (origin)
    D - DESTINO (destination)
    E - DATOS DEL TRANSPORTE
    F - CONTINGENCIAS
    G - DESCARGA
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.observability.logging import get_logger, with_correlation
from core.text import collapse_whitespace, strip_accents
from models.canonical import parse_number
from models.cpe import CpeParseResult, ParsedCpe, Party


logger = get_logger(__name__)


# =============================================================================
# Reference Lists
# =============================================================================

KNOWN_GRAINS = [
    "Trigo", "Soja", "Maíz", "Girasol", "Cebada", "Sorgo",
    "Avena", "Centeno", "Arroz", "Colza", "Lino", "Maní",
    "Algodón", "Cártamo",
]

KNOWN_SUBTYPES = [
    "Cebada Forrajera", "Cebada Cervecera",
    "Trigo Pan", "Trigo Candeal", "Trigo Fideo",
    "Maíz Flint", "Maíz Dentado", "Maíz Pisingallo",
    "Soja",
    "Girasol",
    "Sorgo Granífero",
]

PROVINCES = [
    "BUENOS AIRES", "SANTA FE", "CÓRDOBA", "ENTRE RÍOS", "MENDOZA",
    "CORRIENTES", "MISIONES", "CHACO", "FORMOSA", "SANTIAGO DEL ESTERO",
    "TUCUMÁN", "SALTA", "JUJUY", "CATAMARCA", "LA RIOJA", "SAN JUAN",
    "SAN LUIS", "NEUQUÉN", "RÍO NEGRO", "CHUBUT", "TIERRA DEL FUEGO",
    "LA PAMPA", "SANTA CRUZ",
]

# Labels are matched case-insensitively; attribute name → printed label
REQUIRED_PARTIES = {
    "holder": "Titular Carta de Porte",
    "recipient": "Destinatario",
    "destination_party": "Destino",
    "carrier": "Empresa Transportista",
}

OPTIONAL_PARTIES = {
    "producer_sender": "Remitente Comercial Productor",
    "primary_sale_sender": "Rte. Comercial Venta Primaria",
    "secondary_sale_sender": "Rte. Comercial Venta secundaria:",
    "primary_broker": "Corredor Venta Primaria",
    "secondary_broker": "Corredor Venta Secundaria",
    "delivery_agent": "Representante entregador",
    "freight_intermediary": "Intermediario de flete",
}

# Order in which CUIT - Name pairs appear when the labels are printed as a
# block ahead of their values. Calibrated on observed documents; None marks a
# position without a ParsedCpe attribute.
SEQUENTIAL_PARTY_ORDER = [
    "holder",
    "primary_sale_sender",
    None,  # destinatario interviniente
    "recipient",
    "destination_party",
    "carrier",
]

CUIT_NAME_PATTERN = re.compile(r"(\d{11})\s*-\s*([^\n]+)")
PLATE_PATTERN = re.compile(
    r"([A-Z]{2,3}\d{3}[A-Z]{0,2})\s*-\s*([A-Z]{2,3}\d{3}[A-Z]{0,2})", re.IGNORECASE
)
DATETIME_SECONDS_PATTERN = re.compile(r"(\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2}:\d{2})")
UPPER_WORDS = "A-ZÁÉÍÓÚÑ"
PROVINCE_STARTS = (
    r"BUENOS|SANTA|ENTRE|MENDOZA|C[OÓ]RDOBA|CORRIENTES|MISIONES|CHACO|FORMOSA|SANTIAGO|"
    r"TUCUM[AÁ]N|SALTA|JUJUY|CATAMARCA|LA\s+RIOJA|SAN\s+JUAN|SAN\s+LUIS|NEUQU[EÉ]N|"
    r"R[IÍ]O\s+NEGRO|CHUBUT|TIERRA|LA\s+PAMPA"
)


# =============================================================================
# Helpers
# =============================================================================

def extract_section(text: str, start_marker: str, end_marker: str) -> Optional[str]:
    """
    Substring from start_marker up to end_marker.

    Returns the rest of the text when end_marker is absent, and None when
    start_marker is absent.
    """
    start = text.find(start_marker)
    if start == -1:
        return None
    end = text.find(end_marker, start)
    if end == -1:
        return text[start:]
    return text[start:end]


def clean_name(name: str) -> str:
    """Drop a trailing "Flete pagador:" label and collapse whitespace."""
    name = re.sub(r"Flete\s*pagador\s*:", "", name, flags=re.IGNORECASE)
    return collapse_whitespace(name)


def split_gross_tare(digits: str, net: int) -> Optional[Tuple[int, int]]:
    """
    Split a concatenated gross+tare digit run.

    Tries every split position from 3 to len-3 and returns the first
    (gross, tare) with gross - tare == net and gross > tare > 0.

    Example:
        split_gross_tare("4340013240", 30160) → (43400, 13240)
    """
    for i in range(3, len(digits) - 2):
        gross = int(digits[:i])
        tare = int(digits[i:])
        if gross - tare == net and gross > tare > 0:
            return gross, tare
    return None


def _parse_datetime(raw: str, fmt: str) -> Optional[datetime]:
    try:
        return datetime.strptime(collapse_whitespace(raw), fmt)
    except ValueError:
        return None


def _find_province(section: str) -> Optional[str]:
    upper = strip_accents(section.upper())
    for province in PROVINCES:
        if strip_accents(province) in upper:
            return province
    return None


# =============================================================================
# Parser
# =============================================================================

class CpeParser:
    """
    Stateless CPE parser.

    Usage:
        parser = CpeParser()
        result = parser.parse(text)
        if result.success:
            print(result.cpe.ctg_number, result.cpe.net_weight_kg)
    """

    def parse(self, text: str) -> CpeParseResult:
        """
        Parse CPE text.

        Args:
            text: Text layer of the document

        Returns:
            CpeParseResult with the ParsedCpe and the warnings raised while
            extracting it
        """
        warnings: List[str] = []
        try:
            cpe = self._parse(text, warnings)
        except Exception as e:
            logger.exception("Unexpected error parsing CPE")
            return CpeParseResult(
                success=False,
                errors=[f"Unexpected error parsing CPE: {e}"],
                warnings=warnings,
            )

        logger.info(
            "CPE parsed",
            extra_fields={"ctg_number": cpe.ctg_number, "warnings": len(warnings)},
        )
        return CpeParseResult(success=True, cpe=cpe, warnings=warnings)

    def _parse(self, text: str, warnings: List[str]) -> ParsedCpe:
        ctg_number = self.extract_ctg_number(text, warnings)

        with with_correlation(document_type="cpe", ctg_number=ctg_number, stage="parse"):
            parties = self.extract_parties(text, warnings)
            gross, tare, net = self.extract_weights(text, warnings)
            truck_plate, trailer_plate = self.extract_truck_plates(text, warnings)

            return ParsedCpe(
                cpe_number=self.extract_cpe_number(text, warnings),
                ctg_number=ctg_number,
                emission_date=self.extract_emission_date(text, warnings),
                expiration_date=self.extract_expiration_date(text),
                **parties,
                freight_payer=self.extract_freight_payer(text),
                driver=self.extract_driver(text),
                grain_type=self.extract_grain_type(text, warnings),
                grain_subtype=self.extract_grain_subtype(text),
                quality_declaration=self.extract_quality_declaration(text),
                gross_weight_kg=gross,
                tare_weight_kg=tare,
                net_weight_kg=net,
                campaign=self.extract_campaign(text),
                observations=self.extract_observations(text),
                origin_locality=self.extract_origin_locality(text, warnings),
                origin_province=self.extract_origin_province(text, warnings),
                origin_is_field=self.extract_is_field(text),
                origin_latitude=self.extract_latitude(text),
                origin_longitude=self.extract_longitude(text),
                destination_plant_number=self.extract_plant_number(text),
                destination_locality=self.extract_destination_locality(text, warnings),
                destination_province=self.extract_destination_province(text),
                destination_address=self.extract_destination_address(text),
                truck_plate=truck_plate,
                trailer_plate=trailer_plate,
                departure_date=self.extract_departure_date(text),
                km_to_travel=self.extract_km_to_travel(text),
                freight_rate=self.extract_freight_rate(text),
                discharge_date=self.extract_discharge_date(text),
                parse_warnings=list(warnings),
            )

    # =========================================================================
    # A - Identification
    # =========================================================================

    def extract_cpe_number(self, text: str, warnings: List[str]) -> Optional[str]:
        match = re.search(r"(\d{5}-\d{8})", text)
        if match:
            return match.group(1)
        warnings.append("Could not extract CPE number")
        return None

    def extract_ctg_number(self, text: str, warnings: List[str]) -> Optional[str]:
        match = re.search(r"CTG:\s*(\d+)", text, re.IGNORECASE)
        if match:
            return match.group(1)
        warnings.append("Could not extract CTG number")
        return None

    def extract_emission_date(self, text: str, warnings: List[str]) -> Optional[datetime]:
        match = re.search(r"(\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2})", text)
        if match:
            emitted = _parse_datetime(match.group(1), "%d/%m/%Y %H:%M")
            if emitted:
                return emitted
        warnings.append("Could not extract emission date")
        return None

    def extract_expiration_date(self, text: str) -> Optional[date]:
        match = re.search(r"Vencimiento:\s*\n?\s*(\d{2}/\d{2}/\d{4})", text, re.IGNORECASE)
        if match:
            raw = match.group(1)
        else:
            # Second printed date is the expiration on the standard layout
            dates = re.findall(r"\d{2}/\d{2}/\d{4}", text)
            if len(dates) < 2:
                return None
            raw = dates[1]
        parsed = _parse_datetime(raw, "%d/%m/%Y")
        return parsed.date() if parsed else None

    # =========================================================================
    # Parties
    # =========================================================================

    def extract_labeled_party(self, text: str, label: str) -> Optional[Party]:
        """CUIT - Name on the label's line or the next one."""
        pattern = re.escape(label) + r"[:\s]*\n?\s*(\d{11})\s*-\s*(.+)"
        match = re.search(pattern, text, re.IGNORECASE)
        if not match:
            return None
        return Party(cuit=match.group(1), name=clean_name(match.group(2)))

    def extract_sequential_parties(self, text: str) -> Dict[str, Party]:
        """Every CUIT - Name pair in document order, mapped by position."""
        pairs = [
            Party(cuit=m.group(1), name=clean_name(m.group(2)))
            for m in CUIT_NAME_PATTERN.finditer(text)
        ]
        parties = {}
        for attribute, party in zip(SEQUENTIAL_PARTY_ORDER, pairs):
            if attribute is not None:
                parties[attribute] = party
        return parties

    def extract_parties(self, text: str, warnings: List[str]) -> Dict[str, Optional[Party]]:
        parties: Dict[str, Optional[Party]] = {}
        sequential: Optional[Dict[str, Party]] = None

        for attribute, label in REQUIRED_PARTIES.items():
            party = self.extract_labeled_party(text, label)
            if party is None:
                if sequential is None:
                    sequential = self.extract_sequential_parties(text)
                party = sequential.get(attribute)
                if party is not None:
                    warnings.append(f"Party '{label}' assigned by document position")
                else:
                    warnings.append(f"Could not extract party: {label}")
            parties[attribute] = party

        for attribute, label in OPTIONAL_PARTIES.items():
            parties[attribute] = self.extract_labeled_party(text, label)

        return parties

    def extract_freight_payer(self, text: str) -> Optional[Party]:
        match = re.search(
            r"Flete\s+pagador\s*:\s*\n?\s*(\d{11})\s*-\s*([^\n]+)", text, re.IGNORECASE
        )
        if not match:
            # Inline layout: "30711629048 - ARGENTRADING S.A.Flete pagador:"
            match = re.search(r"(\d{11})\s*-\s*([^\n]+?)Flete\s+pagador", text, re.IGNORECASE)
        if not match:
            return None
        return Party(cuit=match.group(1), name=clean_name(match.group(2)))

    def extract_driver(self, text: str) -> Optional[Party]:
        match = re.search(r"Chofer\s*:\s*(\d{11})\s*-\s*([^\n]+)", text, re.IGNORECASE)
        if not match:
            return None
        return Party(cuit=match.group(1), name=clean_name(match.group(2)))

    # =========================================================================
    # B - Grain and weights
    # =========================================================================

    def extract_grain_type(self, text: str, warnings: List[str]) -> Optional[str]:
        section = extract_section(text, "B - GRANO", "C - PROCEDENCIA")
        if section:
            plain = strip_accents(section)
            for grain in KNOWN_GRAINS:
                if strip_accents(grain) in plain:
                    return grain
        warnings.append("Could not extract grain type")
        return None

    def extract_grain_subtype(self, text: str) -> Optional[str]:
        section = extract_section(text, "B - GRANO", "C - PROCEDENCIA")
        if not section:
            return None

        plain = strip_accents(section)
        for subtype in KNOWN_SUBTYPES:
            if strip_accents(subtype) in plain:
                return subtype

        # Grain on one line, subtype on the next
        starts_with_grain = re.compile(r"^(Trigo|Soja|Ma[ií]z|Girasol|Cebada|Sorgo|Avena)", re.IGNORECASE)
        lines = [line.strip() for line in section.split("\n") if line.strip()]
        for index, line in enumerate(lines[:-1]):
            if starts_with_grain.match(line):
                next_line = lines[index + 1]
                return next_line if starts_with_grain.match(next_line) else None
        return None

    def extract_quality_declaration(self, text: str) -> Optional[str]:
        if "Condicional" in text:
            return "Condicional"
        if "Conforme" in text:
            return "Conforme"
        return None

    def extract_weights(
        self,
        text: str,
        warnings: List[str],
    ) -> Tuple[Optional[int], Optional[int], Optional[int]]:
        """
        Gross, tare and net weight in kg.

        The text layer prints gross and tare glued together ("4340013240")
        followed by the net weight ("30160"); the net weight decides where to
        split. Falls back to separately labeled "Peso Bruto/Tara/Neto" fields.
        """
        section = extract_section(text, "B - GRANO", "C - PROCEDENCIA")
        if section is None:
            warnings.append("Could not find the weights section")
            return None, None, None

        match = re.search(r"(\d{8,12})\s*\n?\s*(\d{4,6})", section)
        if match:
            net = int(match.group(2))
            split = split_gross_tare(match.group(1), net)
            if split:
                gross, tare = split
                return gross, tare, net

        labeled = [
            re.search(rf"Peso\s*{label}\s*\(?kg\)?\s*:\s*(\d+)", text, re.IGNORECASE)
            for label in ("Bruto", "Tara", "Neto")
        ]
        if all(labeled):
            gross, tare, net = (int(m.group(1)) for m in labeled)
            if gross - tare != net:
                warnings.append(f"Labeled weights are inconsistent: {gross} - {tare} != {net}")
            return gross, tare, net

        warnings.append("Could not extract weights")
        return None, None, None

    def extract_campaign(self, text: str) -> Optional[str]:
        match = re.search(r"Campa[ñn]a:\s*(\d{4})", text, re.IGNORECASE)
        return match.group(1) if match else None

    def extract_observations(self, text: str) -> Optional[str]:
        match = re.search(r"Observaciones:\s*([^\n]+)", text, re.IGNORECASE)
        return match.group(1).strip() if match else None

    # =========================================================================
    # C - Origin
    # =========================================================================

    def extract_origin_locality(self, text: str, warnings: List[str]) -> Optional[str]:
        # Layout glues the values: "Localidad:ProvinciaGARREBUENOS AIRES"
        match = re.search(
            rf"C\s*-\s*PROCEDENCIA[\s\S]*?Localidad:\s*(?:Provincia)?\s*([{UPPER_WORDS}\s]+?)(?:{PROVINCE_STARTS})",
            text,
        )
        if match and match.group(1).strip():
            return collapse_whitespace(match.group(1))

        match = re.search(r"C\s*-\s*PROCEDENCIA[\s\S]*?Localidad:\s*(?:Provincia)?\s*(\w+)", text, re.IGNORECASE)
        if match:
            return match.group(1).strip()

        warnings.append("Could not extract origin locality")
        return None

    def extract_origin_province(self, text: str, warnings: List[str]) -> Optional[str]:
        section = extract_section(text, "C - PROCEDENCIA", "D - DESTINO")
        province = _find_province(section) if section else None
        if province is None:
            warnings.append("Could not extract origin province")
        return province

    def extract_is_field(self, text: str) -> Optional[bool]:
        section = extract_section(text, "C - PROCEDENCIA", "D - DESTINO")
        if not section:
            return None
        match = re.search(r"Es\s+un\s+campo:\s*(Si|Sí|No)", section, re.IGNORECASE)
        if not match:
            return None
        return match.group(1).lower() != "no"

    def extract_latitude(self, text: str) -> Optional[str]:
        match = re.search(r"Latitud:\s*([^\n]*?\d+°[^\n]*?'')", text, re.IGNORECASE)
        return match.group(1).strip() if match else None

    def extract_longitude(self, text: str) -> Optional[str]:
        match = re.search(r"Longitud:\s*\.?([^\n]*?\d+°[^\n]*?'')", text, re.IGNORECASE)
        if match:
            return match.group(1).strip()
        coordinates = re.findall(r"(\d+°\s*\d+'\s*\d+'')", text)
        return coordinates[1] if len(coordinates) >= 2 else None

    # =========================================================================
    # D - Destination
    # =========================================================================

    def extract_plant_number(self, text: str) -> Optional[str]:
        section = extract_section(text, "D - DESTINO", "E - DATOS")
        if not section:
            return None
        match = re.search(r"N°\s*Planta[\s\S]*?(\d{4,6})", section, re.IGNORECASE)
        return match.group(1) if match else None

    def extract_destination_locality(self, text: str, warnings: List[str]) -> Optional[str]:
        section = extract_section(text, "D - DESTINO", "E - DATOS")
        if not section:
            warnings.append("Could not extract destination locality")
            return None

        match = re.search(rf"Localidad:\s*(?:Provincia:)?[ \t]*\n?[ \t]*([{UPPER_WORDS} ]+)", section)
        if match and match.group(1).strip():
            return collapse_whitespace(match.group(1))

        for line in section.split("\n"):
            line = line.strip()
            if len(line) > 3 and re.fullmatch(rf"[{UPPER_WORDS}\s]+", line) and not line.startswith("D - "):
                return line
        return None

    def extract_destination_province(self, text: str) -> Optional[str]:
        section = extract_section(text, "D - DESTINO", "E - DATOS")
        return _find_province(section) if section else None

    def extract_destination_address(self, text: str) -> Optional[str]:
        section = extract_section(text, "D - DESTINO", "E - DATOS")
        if not section:
            return None
        # Plant number and address are sometimes glued: "12345RUTA 9 KM 280"
        glued = re.search(rf"\d{{5}}([{UPPER_WORDS} \d]+)", section)
        if glued and glued.group(1).strip():
            return collapse_whitespace(glued.group(1))
        match = re.search(r"Direcci[oó]n:\s*\n?\s*(.+)", section, re.IGNORECASE)
        return match.group(1).strip() if match else None

    # =========================================================================
    # E - Transport
    # =========================================================================

    def extract_truck_plates(self, text: str, warnings: List[str]) -> Tuple[Optional[str], Optional[str]]:
        match = PLATE_PATTERN.search(text)
        if match:
            return match.group(1).upper(), match.group(2).upper()
        warnings.append("Could not extract truck plates")
        return None, None

    def extract_departure_date(self, text: str) -> Optional[datetime]:
        section = extract_section(text, "E - DATOS", "F - CONTINGENCIAS")
        if not section:
            return None
        match = DATETIME_SECONDS_PATTERN.search(section)
        return _parse_datetime(match.group(1), "%d/%m/%Y %H:%M:%S") if match else None

    def extract_km_to_travel(self, text: str) -> Optional[int]:
        section = extract_section(text, "E - DATOS", "F - CONTINGENCIAS")
        if not section:
            return None
        match = re.search(r"Kms?\.\s*a\s*recorrer:\s*(\d{1,5})\b", section, re.IGNORECASE)
        if match:
            return int(match.group(1))
        # The value is usually printed alone on its own line
        for line in section.split("\n"):
            line = line.strip()
            if re.fullmatch(r"\d{1,4}", line) and int(line) >= 1:
                return int(line)
        return None

    def extract_freight_rate(self, text: str) -> Optional[Decimal]:
        match = re.search(r"Tarifa:\s*\n?\s*([\d.,]+)", text, re.IGNORECASE)
        return parse_number(match.group(1)) if match else None

    # =========================================================================
    # G - Discharge
    # =========================================================================

    def extract_discharge_date(self, text: str) -> Optional[datetime]:
        section = extract_section(text, "G - DESCARGA", "HISTORIAL")
        if not section:
            return None
        match = DATETIME_SECONDS_PATTERN.search(section)
        return _parse_datetime(match.group(1), "%d/%m/%Y %H:%M:%S") if match else None
