"""
Settlement parser.

Classifies and normalizes a structured primary grain settlement
(Liquidación Primaria de Granos) produced by the upstream document
extractor:
- Settlement type by quantity and retention markers
- Price breakdown in the fixed order commercial discount → factor → freight
- Retained percentages for partial settlements
- Link to the original COE for finals and adjustments
- CTG list, out-of-grade and canje flags
"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from core.observability.logging import get_logger, with_correlation
from models.canonical import DeliveredGoods, SettlementDocument, parse_number
from models.settlement import (
    AdjustmentType,
    CTG,
    CommercialDiscount,
    Deduction,
    PriceBreakdown,
    Settlement,
    SettlementParseResult,
    SettlementParty,
    SettlementType,
    Withholding,
)


logger = get_logger(__name__)


HUNDRED = Decimal("100")
COMMISSION_RATE = Decimal("0.01")
MIN_CTG_TONS = Decimal("15")
MAX_CTG_TONS = Decimal("38")

# Deduction detail markers of the amount held back until the final settlement
PARTIAL_MARKERS = ("cobrar en liquid", "a cobrar en final")

CANJE_MARKERS = ("canje", "pago en especie")

# First matching keyword wins
ADJUSTMENT_KEYWORDS = [
    (("devol", "saldo pte"), AdjustmentType.FINAL_SETTLEMENT),
    (("bonif",), AdjustmentType.QUALITY_BONUS),
    (("descuento",), AdjustmentType.QUALITY_DISCOUNT),
    (("error", "corrección", "correccion"), AdjustmentType.CORRECTION),
    (("ajuste pe",), AdjustmentType.TECHNICAL_ADJUSTMENT),
]

CONTRACT_PATTERN = re.compile(r"Contrato:\s*(\d+)")
PRICE_PATTERN = re.compile(r"Precio:\s*([\d,.]+)\s*\$/TN")
FACTOR_PATTERN = re.compile(r"Factor:\s*(-?[\d,.]+)")
DISCOUNT_PATTERN = re.compile(r"Desc\.Comercial:\s*(-?[\d,.]+)\s*\$/TN")
FREIGHT_PATTERN = re.compile(r"Flete:\s*(-?[\d,.]+)\s*\$/TN")
NET_PRICE_PATTERN = re.compile(r"Px Neto:\s*([\d,.]+)\s*\$/TN")
ORIGINAL_COE_PATTERN = re.compile(r"COE ORIGINAL:\s*(\d+)", re.IGNORECASE)
PARTIAL_REFERENCE_PATTERN = re.compile(r"Parcial:\s*(\d+)-(\d+)", re.IGNORECASE)


# =============================================================================
# Classification
# =============================================================================

def is_partial_marker(detail: str) -> bool:
    lower = detail.lower()
    return any(marker in lower for marker in PARTIAL_MARKERS)


def infer_settlement_type(document: SettlementDocument) -> SettlementType:
    """
    Settlement type from the delivered quantity.

    Zero quantity means a final or an adjustment; a positive quantity is a
    partial when some deduction retains an amount for the final settlement.
    """
    if document.operacion.cantidad_kg == 0:
        if "ajuste" in document.tipo_operacion.lower():
            return SettlementType.ADJUSTMENT
        return SettlementType.FINAL

    if any(is_partial_marker(d.detalle) for d in document.deducciones):
        return SettlementType.PARTIAL
    return SettlementType.UNIQUE


def identify_adjustment_type(additional_data: str) -> AdjustmentType:
    lower = additional_data.lower()
    for keywords, adjustment_type in ADJUSTMENT_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return adjustment_type
    return AdjustmentType.OTHER


def extract_original_coe(additional_data: str) -> Optional[str]:
    """COE of the settlement a final or adjustment refers to."""
    match = ORIGINAL_COE_PATTERN.search(additional_data)
    if match:
        return match.group(1)
    match = PARTIAL_REFERENCE_PATTERN.search(additional_data)
    if match:
        return match.group(1) + match.group(2)
    return None


def is_canje(document: SettlementDocument) -> bool:
    lower = document.datos_adicionales.lower()
    if any(marker in lower for marker in CANJE_MARKERS):
        return True
    return document.operacion.importe_iva is not None and document.operacion.importe_iva == 0


# =============================================================================
# Quality factor and CTGs
# =============================================================================

def average_factor(goods: List[DeliveredGoods]) -> Decimal:
    """Mean CTG factor rounded to 3 decimals, 100 when none is stated."""
    factors = [g.factor for g in goods if g.factor is not None]
    if not factors:
        return HUNDRED
    mean = sum(factors, Decimal("0")) / len(factors)
    return mean.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)


def average_protein(goods: List[DeliveredGoods]) -> Decimal:
    proteins = [g.contenido_proteico for g in goods if g.contenido_proteico is not None and g.contenido_proteico > 0]
    if not proteins:
        return Decimal("0")
    return sum(proteins, Decimal("0")) / len(proteins)


def delivered_grade(goods: List[DeliveredGoods], contracted_grade: Optional[str]) -> Optional[str]:
    """Contracted grade when the first CTG factor is 100, otherwise "FG" (fuera de grado)."""
    factor = goods[0].factor if goods and goods[0].factor is not None else HUNDRED
    if factor == HUNDRED:
        return contracted_grade
    return "FG"


def is_within_ctg_range(tons: Decimal) -> bool:
    return MIN_CTG_TONS <= tons <= MAX_CTG_TONS


def build_ctg(goods: DeliveredGoods) -> CTG:
    tons = goods.peso_kg / 1000
    return CTG(
        number=goods.numero_comprobante,
        quantity_kg=goods.peso_kg,
        quantity_tons=tons,
        grade=goods.grado,
        quality_factor=goods.factor,
        protein=goods.contenido_proteico,
        origin=goods.procedencia,
        is_within_range=is_within_ctg_range(tons),
    )


# =============================================================================
# Price Breakdown
# =============================================================================

def compute_price_breakdown(
    base_price: Decimal,
    commercial_discount: Decimal,
    factor: Decimal,
    freight: Decimal,
    contract_number: Optional[str] = None,
    factor_adjustment_document: Optional[Decimal] = None,
    net_price_document: Optional[Decimal] = None,
) -> PriceBreakdown:
    """
    Rebuild the net price per ton.

    Order is fixed: commercial discount first, then the quality factor, then
    freight. Applying the factor before the discount gives a different
    result.

    Example:
        base 300, discount 6, factor 98.5, freight 10
        → (300 - 6) × 0.985 - 10 = 279.59
    """
    commission = base_price * COMMISSION_RATE
    paritarias = commercial_discount - commission
    price_after_commercial = base_price - commercial_discount
    price_after_factor = price_after_commercial * factor / HUNDRED
    net_price = price_after_factor - freight

    calculation_matches = None
    if net_price_document is not None:
        calculation_matches = abs(net_price - net_price_document) < 1

    return PriceBreakdown(
        contract_number=contract_number,
        base_price_per_ton=base_price,
        commercial_discount=CommercialDiscount(
            total=commercial_discount,
            commission=commission,
            paritarias=paritarias if paritarias > 0 else None,
        ),
        price_after_commercial=price_after_commercial,
        quality_factor=factor,
        factor_adjustment=price_after_factor - price_after_commercial,
        factor_adjustment_document=factor_adjustment_document,
        price_after_factor=price_after_factor,
        freight=freight,
        net_price_per_ton=net_price,
        net_price_per_kg=net_price / 1000,
        net_price_per_ton_document=net_price_document,
        calculation_matches=calculation_matches,
    )


def _match_number(pattern: re.Pattern, text: str) -> Optional[Decimal]:
    match = pattern.search(text)
    return parse_number(match.group(1)) if match else None


def extract_price_breakdown(additional_data: str, factor: Decimal) -> Optional[PriceBreakdown]:
    """Price breakdown from the Datos Adicionales text, None without a price."""
    base_price = _match_number(PRICE_PATTERN, additional_data)
    if base_price is None:
        return None

    contract = CONTRACT_PATTERN.search(additional_data)
    discount = _match_number(DISCOUNT_PATTERN, additional_data)
    freight = _match_number(FREIGHT_PATTERN, additional_data)

    return compute_price_breakdown(
        base_price=base_price,
        commercial_discount=abs(discount) if discount is not None else Decimal("0"),
        factor=factor,
        freight=abs(freight) if freight is not None else Decimal("0"),
        contract_number=contract.group(1) if contract else None,
        factor_adjustment_document=_match_number(FACTOR_PATTERN, additional_data),
        net_price_document=_match_number(NET_PRICE_PATTERN, additional_data),
    )


# =============================================================================
# Parser
# =============================================================================

class SettlementParser:
    """
    Stateless settlement parser.

    Usage:
        parser = SettlementParser()
        result = parser.parse(document)
        if result.success:
            print(result.settlement.settlement_type, result.settlement.net_amount)
    """

    def parse(self, document: SettlementDocument) -> SettlementParseResult:
        warnings: List[str] = []

        with with_correlation(document_type="settlement", coe=document.coe, stage="parse"):
            try:
                settlement = self._parse(document, warnings)
            except Exception as e:
                logger.exception("Unexpected error parsing settlement")
                return SettlementParseResult(
                    success=False,
                    errors=[f"Unexpected error parsing settlement: {e}"],
                    warnings=warnings,
                )

            logger.info(
                "Settlement parsed",
                extra_fields={
                    "settlement_type": settlement.settlement_type.value,
                    "net_amount": str(settlement.net_amount),
                    "ctgs": len(settlement.ctgs),
                },
            )
            return SettlementParseResult(success=True, settlement=settlement, warnings=warnings)

    def _parse(self, document: SettlementDocument, warnings: List[str]) -> Settlement:
        operation = document.operacion
        goods = document.mercaderia_entregada
        settlement_type = infer_settlement_type(document)

        deductions = [
            Deduction(
                concept=d.concepto,
                detail=d.detalle,
                percentage=d.porcentaje,
                calculation_base=d.base_calculo,
                vat_rate=d.alicuota,
                vat_amount=d.importe_iva,
                amount=d.deducciones,
            )
            for d in document.deducciones
        ]
        withholdings = [
            Withholding(
                concept=w.concepto,
                detail=w.detalle,
                certificate_number=w.certificado_retencion,
                certificate_amount=w.importe_certificado,
                certificate_date=w.fecha_certificado,
                calculation_base=w.base_calculo,
                rate=w.alicuota,
                amount=w.retenciones,
            )
            for w in document.retenciones
        ]

        factor = average_factor(goods)
        price_breakdown = extract_price_breakdown(document.datos_adicionales, factor)
        if price_breakdown is None:
            warnings.append("No price found in additional data, price breakdown skipped")

        percentages = {}
        if settlement_type == SettlementType.PARTIAL:
            percentages = self.calculate_percentages(deductions, operation.subtotal, warnings)

        original_coe = None
        adjustment_type = None
        if settlement_type in (SettlementType.FINAL, SettlementType.ADJUSTMENT):
            original_coe = extract_original_coe(document.datos_adicionales)
            if original_coe is not None:
                adjustment_type = identify_adjustment_type(document.datos_adicionales)
            else:
                warnings.append("No reference to the original settlement found")

        contracted_grade = document.condiciones_operacion.grado
        totals = document.importes_totales

        return Settlement(
            coe=document.coe,
            settlement_type=settlement_type,
            adjustment_type=adjustment_type,
            original_coe=original_coe,
            settlement_date=document.fecha,
            operation_type=document.tipo_operacion,
            activity=document.actividad,
            buyer=self._party(document.comprador),
            seller=self._party(document.vendedor),
            broker=SettlementParty(
                name=document.corredor.razon_social,
                cuit=document.corredor.cuit,
                acted_as=document.corredor.actuo,
            ) if document.corredor else None,
            product=operation.grano or document.condiciones_operacion.grano,
            contracted_grade=contracted_grade,
            delivered_grade=delivered_grade(goods, contracted_grade or operation.grado),
            quantity_kg=operation.cantidad_kg,
            price_per_kg=operation.precio_kg,
            subtotal=operation.subtotal,
            vat_rate=operation.alicuota_iva,
            vat_amount=operation.importe_iva,
            total_with_vat=operation.operacion_con_iva,
            deductions=deductions,
            withholdings=withholdings,
            total_deductions=sum((d.amount for d in deductions), Decimal("0")),
            total_withholdings=sum((w.amount for w in withholdings), Decimal("0")),
            net_amount=totals.importe_neto_pagar,
            deferred_vat=totals.iva_diferido,
            price_breakdown=price_breakdown,
            ctgs=[build_ctg(g) for g in goods],
            quality_factor=factor,
            average_protein=average_protein(goods),
            is_canje=is_canje(document),
            is_out_of_grade=factor != HUNDRED,
            additional_data=document.datos_adicionales,
            **percentages,
        )

    def calculate_percentages(
        self,
        deductions: List[Deduction],
        subtotal: Decimal,
        warnings: List[str],
    ) -> dict:
        """Retained and liquidated percentages of a partial settlement."""
        retention = next((d for d in deductions if is_partial_marker(d.detail)), None)
        if retention is None:
            return {}
        if subtotal == 0:
            warnings.append("Subtotal is zero, retained percentage not computed")
            return {"retained_amount": retention.amount}

        one_decimal = Decimal("0.1")
        retained = (retention.amount / subtotal * HUNDRED).quantize(one_decimal, rounding=ROUND_HALF_UP)
        return {
            "percentage_retained": retained,
            "percentage_liquidated": HUNDRED - retained,
            "retained_amount": retention.amount,
        }

    @staticmethod
    def _party(party) -> SettlementParty:
        return SettlementParty(
            name=party.razon_social,
            cuit=party.cuit,
            address=party.domicilio,
            locality=party.localidad,
            vat_condition=party.iva,
            gross_income_number=party.ingresos_brutos,
        )
