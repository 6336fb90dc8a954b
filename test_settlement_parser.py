"""
Settlement Parser Tests

Covers classification and normalization of structured settlements:
1. Settlement type inference (unique / partial / final / adjustment)
2. Price breakdown order: commercial discount → factor → freight
3. Partial percentages and final/adjustment linking
4. CTGs, delivered grade and canje detection
"""

from datetime import date
from decimal import Decimal

import pytest


def make_document(**overrides):
    from models.canonical import SettlementDocument

    data = {
        "coe": "330212345678",
        "tipo_operacion": "Compraventa",
        "actividad": "Acopio",
        "fecha": "15/03/2024",
        "comprador": {"razon_social": "EXPORTADORA GRANOS S.A.", "cuit": "30500000001"},
        "vendedor": {"razon_social": "AGRO SUR S.A.", "cuit": "20123456789", "iva": "Responsable Inscripto"},
        "corredor": {"razon_social": "CORREDORES UNIDOS S.A.", "cuit": "30698765432", "actuo": "SI"},
        "condiciones_operacion": {"grado": "G2", "grano": "Soja"},
        "mercaderia_entregada": [
            {"numero_comprobante": "10108765432", "grado": "G2", "factor": "100", "peso_kg": "30160"},
            {"numero_comprobante": "10108765433", "grado": "G2", "factor": "100", "peso_kg": "28840"},
        ],
        "operacion": {
            "cantidad_kg": "59000",
            "precio_kg": "0,3",
            "subtotal": "17.700,00",
            "alicuota_iva": "10,5",
            "importe_iva": "1.858,50",
            "operacion_con_iva": "19.558,50",
            "grano": "Soja",
        },
        "deducciones": [
            {"concepto": "Comisión", "detalle": "Comisión corredor", "deducciones": "177"},
        ],
        "retenciones": [
            {"concepto": "Ganancias", "detalle": "Retención ganancias", "retenciones": "200"},
        ],
        "importes_totales": {"importe_neto_pagar": "19.181,50"},
        "datos_adicionales": "Contrato:4567 Precio: 300,00$/TN Desc.Comercial: -6,00$/TN Flete: -10,00$/TN Px Neto: 284,00$/TN",
    }
    data.update(overrides)
    return SettlementDocument.model_validate(data)


def parse(document):
    from extraction.settlement_parser import SettlementParser

    result = SettlementParser().parse(document)
    assert result.success, result.errors
    return result


class TestTypeInference:
    """Settlement type is inferred from quantity and retention markers."""

    def test_unique(self):
        from models.settlement import SettlementType

        assert parse(make_document()).settlement.settlement_type == SettlementType.UNIQUE

    def test_partial(self):
        from models.settlement import SettlementType

        document = make_document(deducciones=[
            {"concepto": "Retención", "detalle": "Saldo a cobrar en liquidación final", "deducciones": "1770"},
        ])
        assert parse(document).settlement.settlement_type == SettlementType.PARTIAL

    def test_final(self):
        from models.settlement import SettlementType

        document = make_document(
            operacion={"cantidad_kg": "0", "subtotal": "1770"},
            mercaderia_entregada=[],
        )
        assert parse(document).settlement.settlement_type == SettlementType.FINAL

    def test_adjustment(self):
        from models.settlement import SettlementType

        document = make_document(
            tipo_operacion="Ajuste Débito",
            operacion={"cantidad_kg": "0", "subtotal": "500"},
            mercaderia_entregada=[],
        )
        assert parse(document).settlement.settlement_type == SettlementType.ADJUSTMENT


class TestPriceBreakdown:
    """Net price is rebuilt in the fixed order."""

    def test_discount_before_factor(self):
        """(300 - 6) × 0.985 - 10 = 279.59, not 300 × 0.985 - 6 - 10."""
        from extraction.settlement_parser import compute_price_breakdown

        breakdown = compute_price_breakdown(
            base_price=Decimal("300"),
            commercial_discount=Decimal("6"),
            factor=Decimal("98.5"),
            freight=Decimal("10"),
        )

        assert breakdown.price_after_commercial == Decimal("294")
        assert breakdown.price_after_factor == Decimal("289.59")
        assert breakdown.net_price_per_ton == Decimal("279.59")
        assert breakdown.factor_adjustment == Decimal("-4.41")
        assert breakdown.commercial_discount.commission == Decimal("3")
        assert breakdown.commercial_discount.paritarias == Decimal("3")
        assert breakdown.calculation_matches is None

    def test_from_additional_data(self):
        breakdown = parse(make_document()).settlement.price_breakdown

        assert breakdown.contract_number == "4567"
        assert breakdown.base_price_per_ton == Decimal("300.00")
        assert breakdown.freight == Decimal("10.00")
        assert breakdown.net_price_per_ton == Decimal("284.00")
        assert breakdown.calculation_matches is True

    def test_document_price_mismatch(self):
        document = make_document(datos_adicionales="Precio: 300,00$/TN Px Neto: 290,00$/TN")
        breakdown = parse(document).settlement.price_breakdown

        assert breakdown.calculation_matches is False

    def test_no_price_is_a_warning(self):
        result = parse(make_document(datos_adicionales=""))

        assert result.settlement.price_breakdown is None
        assert result.settlement.contract_number is None
        assert any("price breakdown" in w for w in result.warnings)


class TestPartialAndLinking:
    """Partial percentages and final/adjustment references."""

    def test_partial_percentages(self):
        document = make_document(deducciones=[
            {"concepto": "Retención", "detalle": "A cobrar en final", "deducciones": "1770"},
        ])
        settlement = parse(document).settlement

        assert settlement.percentage_retained == Decimal("10.0")
        assert settlement.percentage_liquidated == Decimal("90.0")
        assert settlement.retained_amount == Decimal("1770")

    def test_unique_has_no_percentages(self):
        settlement = parse(make_document()).settlement

        assert settlement.percentage_retained is None
        assert settlement.original_coe is None

    def test_original_coe_reference(self):
        from models.settlement import AdjustmentType

        document = make_document(
            operacion={"cantidad_kg": "0", "subtotal": "1770"},
            mercaderia_entregada=[],
            datos_adicionales="COE ORIGINAL: 330212345600 Saldo pte de liquidación",
        )
        settlement = parse(document).settlement

        assert settlement.original_coe == "330212345600"
        assert settlement.adjustment_type == AdjustmentType.FINAL_SETTLEMENT

    def test_partial_reference(self):
        from extraction.settlement_parser import extract_original_coe

        assert extract_original_coe("Parcial: 3302-12345600") == "330212345600"
        assert extract_original_coe("sin referencia") is None

    @pytest.mark.parametrize("text,expected", [
        ("Bonificación por calidad", "quality_bonus"),
        ("Descuento por calidad", "quality_discount"),
        ("Corrección de precio", "correction"),
        ("correccion de precio", "correction"),
        ("Ajuste PE", "technical_adjustment"),
        ("Otro motivo", "other"),
    ])
    def test_adjustment_type(self, text, expected):
        from extraction.settlement_parser import identify_adjustment_type

        assert identify_adjustment_type(text).value == expected


class TestGoods:
    """CTGs, grade and flags."""

    def test_ctgs(self):
        settlement = parse(make_document()).settlement

        assert [c.number for c in settlement.ctgs] == ["10108765432", "10108765433"]
        assert settlement.ctgs[0].quantity_tons == Decimal("30.16")
        assert all(c.is_within_range for c in settlement.ctgs)
        assert settlement.total_deductions == Decimal("177")
        assert settlement.total_withholdings == Decimal("200")
        assert settlement.settlement_date == date(2024, 3, 15)

    def test_in_grade(self):
        settlement = parse(make_document()).settlement

        assert settlement.delivered_grade == "G2"
        assert settlement.quality_factor == Decimal("100")
        assert settlement.is_out_of_grade is False

    def test_out_of_grade(self):
        document = make_document(mercaderia_entregada=[
            {"numero_comprobante": "10108765432", "factor": "98,5", "peso_kg": "30160"},
            {"numero_comprobante": "10108765433", "factor": "99", "peso_kg": "28840"},
        ])
        settlement = parse(document).settlement

        assert settlement.delivered_grade == "FG"
        assert settlement.quality_factor == Decimal("98.750")
        assert settlement.is_out_of_grade is True

    def test_canje(self):
        assert parse(make_document(datos_adicionales="Operación en canje")).settlement.is_canje
        assert not parse(make_document()).settlement.is_canje

    def test_zero_vat_is_canje(self):
        document = make_document(operacion={"cantidad_kg": "59000", "subtotal": "17700", "importe_iva": "0"})
        assert parse(document).settlement.is_canje
