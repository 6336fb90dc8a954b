"""
CPE Parser Tests

Covers the Carta de Porte Electrónica text parser:
1. Identification, parties and transport fields on a standard layout
2. Gross/tare split of the concatenated weight run
3. Position-based party assignment when labels are printed as a block
4. Tolerance: missing fields become warnings, parsing still succeeds
"""

from datetime import date, datetime
from decimal import Decimal

import pytest


CPE_TEXT = """CARTA DE PORTE ELECTRÓNICA - AUTOMOTOR
Nro. CPE: 00010-00012345
CTG: 10108765432
Fecha de emisión: 15/03/2024 10:30
Vencimiento: 20/03/2024
A - INTERVINIENTES
Titular Carta de Porte: 20123456789 - AGRO SUR S.A.
Rte. Comercial Venta Primaria: 30712345678 - ACOPIO NORTE SRL
Corredor Venta Primaria: 30698765432 - CORREDORES UNIDOS S.A.
Representante entregador: 30555555555 - ENTREGAS DEL PUERTO SA
Destinatario: 30500000001 - EXPORTADORA GRANOS S.A.
Destino: 30500000001 - EXPORTADORA GRANOS S.A.
Empresa Transportista: 30600000002 - TRANSPORTES RUTA 9 SRL
Flete pagador: 30711629048 - ARGENTRADING S.A.
Chofer: 20333333333 - JUAN PEREZ
B - GRANO / ESPECIE
Soja
Campaña: 2324
Peso Bruto/Tara/Neto (kg)
4340013240
30160
Declaración de calidad: Conforme
C - PROCEDENCIA
Localidad:ProvinciaGARREBUENOS AIRES
Es un campo: Si
Latitud: 36° 33' 41''
Longitud: 62° 36' 12''
D - DESTINO
N° Planta
12345
Localidad: Provincia:
TIMBUES
SANTA FE
Dirección: RUTA 11 KM 355
E - DATOS DEL TRANSPORTE
AB123CD - AC456EF
Fecha de partida: 15/03/2024 11:00:00
Kms. a recorrer: 350
Tarifa: 25.000,50
F - CONTINGENCIAS
G - DESCARGA
Fecha de arribo: 16/03/2024 08:15:00
HISTORIAL
"""


@pytest.fixture
def parsed():
    from extraction.cpe_parser import CpeParser
    result = CpeParser().parse(CPE_TEXT)
    assert result.success
    return result.cpe


class TestIdentification:
    """Test CPE and CTG identification fields."""

    def test_numbers(self, parsed):
        """CPE and CTG numbers are extracted."""
        assert parsed.cpe_number == "00010-00012345"
        assert parsed.ctg_number == "10108765432"

    def test_dates(self, parsed):
        """Emission, expiration, departure and discharge dates."""
        assert parsed.emission_date == datetime(2024, 3, 15, 10, 30)
        assert parsed.expiration_date == date(2024, 3, 20)
        assert parsed.departure_date == datetime(2024, 3, 15, 11, 0, 0)
        assert parsed.discharge_date == datetime(2024, 3, 16, 8, 15, 0)


class TestParties:
    """Test labeled party extraction."""

    def test_required_parties(self, parsed):
        assert parsed.holder.cuit == "20123456789"
        assert parsed.holder.name == "AGRO SUR S.A."
        assert parsed.recipient.cuit == "30500000001"
        assert parsed.destination_party.name == "EXPORTADORA GRANOS S.A."
        assert parsed.carrier.name == "TRANSPORTES RUTA 9 SRL"

    def test_optional_parties(self, parsed):
        assert parsed.primary_sale_sender.name == "ACOPIO NORTE SRL"
        assert parsed.primary_broker.cuit == "30698765432"
        assert parsed.delivery_agent.name == "ENTREGAS DEL PUERTO SA"
        assert parsed.secondary_broker is None
        assert parsed.producer_sender is None

    def test_freight_payer_and_driver(self, parsed):
        assert parsed.freight_payer.cuit == "30711629048"
        assert parsed.freight_payer.name == "ARGENTRADING S.A."
        assert parsed.driver.name == "JUAN PEREZ"

    def test_freight_payer_label_after_name(self):
        """Inline layout prints the label right after the party name."""
        from extraction.cpe_parser import CpeParser

        party = CpeParser().extract_freight_payer("30711629048 - ARGENTRADING S.A.Flete pagador:\n")
        assert party.cuit == "30711629048"
        assert party.name == "ARGENTRADING S.A."

    def test_sequential_fallback(self):
        """Labels printed as a block are mapped by position with a warning."""
        from extraction.cpe_parser import CpeParser

        text = (
            "Titular Carta de Porte:\n"
            "Rte. Comercial Venta Primaria:\n"
            "Destinatario:\n"
            "Destino:\n"
            "Empresa Transportista:\n"
            "Intervinientes\n"
            "20123456789 - AGRO SUR S.A.\n"
            "30712345678 - ACOPIO NORTE SRL\n"
            "30500000009 - INTERVINIENTE SA\n"
            "30500000001 - EXPORTADORA GRANOS S.A.\n"
            "30500000002 - PLANTA TIMBUES\n"
            "30600000002 - TRANSPORTES RUTA 9 SRL\n"
        )
        result = CpeParser().parse(text)

        assert result.success
        assert result.cpe.holder.name == "AGRO SUR S.A."
        assert result.cpe.recipient.name == "EXPORTADORA GRANOS S.A."
        assert result.cpe.destination_party.name == "PLANTA TIMBUES"
        assert result.cpe.carrier.name == "TRANSPORTES RUTA 9 SRL"
        assert any("by document position" in w for w in result.warnings)


class TestGrainAndWeights:
    """Test grain section and weight extraction."""

    def test_grain(self, parsed):
        assert parsed.grain_type == "Soja"
        assert parsed.campaign == "2324"
        assert parsed.quality_declaration == "Conforme"

    def test_concatenated_weights(self, parsed):
        """Gross and tare glued together are split using the net weight."""
        assert parsed.gross_weight_kg == 43400
        assert parsed.tare_weight_kg == 13240
        assert parsed.net_weight_kg == 30160

    def test_split_gross_tare(self):
        from extraction.cpe_parser import split_gross_tare

        assert split_gross_tare("4340013240", 30160) == (43400, 13240)
        assert split_gross_tare("4340013240", 12345) is None

    @pytest.mark.parametrize("gross,tare", [
        (45000, 15000),
        (9999, 1234),
        (120000, 45000),
        (30160, 980),
    ])
    def test_split_gross_tare_recovers_weights(self, gross, tare):
        from extraction.cpe_parser import split_gross_tare

        assert split_gross_tare(f"{gross}{tare}", gross - tare) == (gross, tare)

    def test_labeled_weights_fallback(self):
        """Separately labeled weights are used when no digit run is found."""
        from extraction.cpe_parser import CpeParser

        text = (
            "B - GRANO / ESPECIE\nTrigo\n"
            "Peso Bruto (kg): 45000\nPeso Tara (kg): 15000\nPeso Neto (kg): 30000\n"
            "C - PROCEDENCIA\n"
        )
        warnings = []
        weights = CpeParser().extract_weights(text, warnings)

        assert weights == (45000, 15000, 30000)
        assert warnings == []

    def test_accented_grain_name(self):
        """Maíz is found with or without the accent."""
        from extraction.cpe_parser import CpeParser

        text = "B - GRANO / ESPECIE\nMaiz\nMaíz Flint\nC - PROCEDENCIA\n"
        parser = CpeParser()

        assert parser.extract_grain_type(text, []) == "Maíz"
        assert parser.extract_grain_subtype(text) == "Maíz Flint"


class TestLocations:
    """Test origin, destination and transport fields."""

    def test_origin(self, parsed):
        assert parsed.origin_locality == "GARRE"
        assert parsed.origin_province == "BUENOS AIRES"
        assert parsed.origin_is_field is True
        assert parsed.origin_latitude == "36° 33' 41''"
        assert parsed.origin_longitude == "62° 36' 12''"

    def test_destination(self, parsed):
        assert parsed.destination_plant_number == "12345"
        assert parsed.destination_locality == "TIMBUES"
        assert parsed.destination_province == "SANTA FE"
        assert parsed.destination_address == "RUTA 11 KM 355"

    def test_transport(self, parsed):
        assert parsed.truck_plate == "AB123CD"
        assert parsed.trailer_plate == "AC456EF"
        assert parsed.km_to_travel == 350
        assert parsed.freight_rate == Decimal("25000.50")


class TestTolerance:
    """Missing fields never abort parsing."""

    def test_empty_text(self):
        from extraction.cpe_parser import CpeParser

        result = CpeParser().parse("")

        assert result.success
        assert result.cpe.ctg_number is None
        assert result.cpe.net_weight_kg is None
        assert "Could not extract CTG number" in result.warnings
        assert result.cpe.parse_warnings == result.warnings

    def test_calls_do_not_share_warnings(self):
        """A parser instance keeps no state between calls."""
        from extraction.cpe_parser import CpeParser

        parser = CpeParser()
        first = parser.parse("")
        second = parser.parse(CPE_TEXT)

        assert first.warnings
        assert "Could not extract CTG number" not in second.warnings

    def test_extract_section(self):
        from extraction.cpe_parser import extract_section

        assert extract_section("A x B y C", "B", "C") == "B y "
        assert extract_section("A x B y", "B", "Z") == "B y"
        assert extract_section("A x", "B", "C") is None
