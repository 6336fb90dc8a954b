"""
Quality Calculation Engine

Computes the quality factor of one delivered lot from its lab analysis:
1. Grade (worst parameter rule)
2. Grade adjustment
3. Special bonuses (protein, fat, hectoliter weight)
4. Discounts
5. Final factor = 100 + grade adjustment + bonuses - discounts
6. Moisture loss
7. Out-of-standard conditions

One engine serves every grain; grain behavior comes from its GrainRuleSet.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from core.observability.logging import get_logger, with_correlation
from models.quality import (
    AggregatedQualityResult,
    BonusDetail,
    DiscountDetail,
    DiscrepancyStatus,
    FactorComparison,
    LotQuality,
    MoistureLoss,
    PriceAdjustment,
    QualityAnalysis,
    QualityResult,
    QualityWarning,
)
from models.validation import Severity

from .discounts import evaluate_discount, measured_value
from .models import GrainRuleSet, grade_label
from .moisture import MoistureLossTable, load_moisture_tables
from .rules import default_rule_sets, normalize_product


logger = get_logger(__name__)

BASE_FACTOR = Decimal("100")
ZERO = Decimal("0")
CENT = Decimal("0.01")

FACTOR_OK_TOLERANCE = Decimal("0.1")
FACTOR_WARNING_TOLERANCE = Decimal("0.5")


class QualityEngineError(Exception):
    """Base error for quality calculations."""
    pass


class UnknownProductError(QualityEngineError):
    """No rule set or moisture table exists for a product."""

    def __init__(self, product: str, known_products: Iterable[str] = ()):
        self.product = product
        self.known_products = sorted(known_products)
        super().__init__(
            f"No quality rules for product {product!r} "
            f"(known: {', '.join(self.known_products) or 'none'})"
        )


def _round(value: Decimal, exponent: Decimal = CENT) -> Decimal:
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def _grade_number(label: Optional[str]) -> Optional[int]:
    if not label or not label.upper().startswith("G"):
        return None
    try:
        return int(label[1:])
    except ValueError:
        return None


class QualityCalculationEngine:
    """
    Rule-set driven quality calculator.

    Usage:
        engine = QualityCalculationEngine.with_defaults()
        result = engine.calculate(analysis)
    """

    def __init__(
        self,
        rule_sets: Dict[str, GrainRuleSet],
        moisture_tables: Dict[str, MoistureLossTable],
        reference_date: Optional[date] = None,
    ):
        """
        Initialize the engine.

        Args:
            rule_sets: Rule sets keyed by canonical product
            moisture_tables: Moisture tables keyed by canonical product
            reference_date: Date used for seasonal rules when an analysis has
                no analysis_date (defaults to today at calculation time)

        Raises:
            QualityEngineError: If a rule set and its moisture table disagree
                on the base humidity
        """
        self.rule_sets = dict(rule_sets)
        self.moisture_tables = dict(moisture_tables)
        for product in sorted(set(self.rule_sets) & set(self.moisture_tables)):
            rule_base = self.rule_sets[product].base_humidity
            table_base = self.moisture_tables[product].base_humidity
            if rule_base != table_base:
                raise QualityEngineError(
                    f"Base humidity for {product!r} is {rule_base}% in the rule set "
                    f"but {table_base}% in the moisture table"
                )
        self.reference_date = reference_date

    @classmethod
    def with_defaults(cls, reference_date: Optional[date] = None) -> "QualityCalculationEngine":
        """Engine with the standard rule sets and the shipped moisture tables."""
        return cls(default_rule_sets(), load_moisture_tables(), reference_date=reference_date)

    @classmethod
    def from_settings(cls, settings) -> "QualityCalculationEngine":
        """Engine with the standard rule sets and the configured moisture tables."""
        return cls(default_rule_sets(), load_moisture_tables(settings.moisture_tables_path))

    @property
    def supported_products(self) -> List[str]:
        return sorted(set(self.rule_sets) & set(self.moisture_tables))

    def rules_for(self, product: str) -> Tuple[GrainRuleSet, MoistureLossTable]:
        """
        Resolve the rule set and moisture table for a product name.

        Raises:
            UnknownProductError: If either is missing
        """
        key = normalize_product(product)
        rule_set = self.rule_sets.get(key)
        table = self.moisture_tables.get(key)
        if rule_set is None or table is None:
            raise UnknownProductError(product, self.supported_products)
        return rule_set, table

    # =========================================================================
    # Main calculation
    # =========================================================================

    def calculate(self, analysis: QualityAnalysis) -> QualityResult:
        """
        Calculate the quality result for one CTG.

        Args:
            analysis: Lab analysis of the lot

        Returns:
            QualityResult

        Raises:
            UnknownProductError: If the product has no rule set
        """
        rule_set, table = self.rules_for(analysis.product)

        with with_correlation(ctg_number=analysis.ctg_number, product=rule_set.product, stage="quality"):
            warnings: List[QualityWarning] = []
            steps: List[str] = []

            # 1. Grade
            grade, grade_by_parameter, worst_parameter = self._determine_grade(rule_set, analysis)
            if rule_set.has_grades:
                steps.append(f"Grado: {grade_label(grade) or '-'} (peor parámetro: {worst_parameter or '-'})")

            # 2. Grade adjustment
            grade_adjustment = rule_set.grade_adjustment(grade)
            steps.append(f"Bonificación/rebaja por grado: {grade_adjustment:+}%")

            # 3. Special bonuses
            bonuses = self._special_bonuses(rule_set, analysis)
            total_bonus = sum((b.bonus_percent for b in bonuses), ZERO)
            for bonus in bonuses:
                steps.append(f"{bonus.concept}: {bonus.calculation}")

            # 4. Discounts
            month = self._analysis_month(analysis)
            discounts, rejected, discount_warnings = self._discounts(rule_set, analysis, month)
            warnings.extend(discount_warnings)
            total_discount = sum((d.discount_percent for d in discounts), ZERO)
            for discount in discounts:
                steps.append(f"{discount.concept}: {discount.calculation}")

            # 5. Final factor
            final_factor = BASE_FACTOR + grade_adjustment + total_bonus - total_discount
            steps.append(
                f"Factor final: 100 {grade_adjustment:+} {total_bonus:+} - {total_discount} = {final_factor}"
            )

            # 6. Moisture loss
            moisture_loss, moisture_warnings = self._moisture_loss(table, analysis)
            warnings.extend(moisture_warnings)
            if moisture_loss.requires_drying:
                steps.append(
                    f"Merma: {moisture_loss.rounded_humidity}% → "
                    f"{moisture_loss.drying_waste_percent}% secado + "
                    f"{moisture_loss.handling_waste_percent}% manipuleo = "
                    f"{moisture_loss.waste_kg} kg"
                )

            # 7. Out of standard
            standard_warnings = self._out_of_standard(rule_set, analysis)
            warnings.extend(standard_warnings)

            result = QualityResult(
                ctg_number=analysis.ctg_number,
                product=rule_set.product,
                grade=grade_label(grade),
                grade_by_parameter=grade_by_parameter,
                worst_parameter=worst_parameter,
                base_factor=BASE_FACTOR,
                grade_adjustment=grade_adjustment,
                bonuses=bonuses,
                total_bonus=total_bonus,
                discounts=discounts,
                total_discount=total_discount,
                final_factor=final_factor,
                moisture_loss=moisture_loss,
                is_out_of_standard=bool(standard_warnings),
                is_rejected=rejected,
                warnings=warnings,
                calculation_steps=steps,
            )

            logger.info(
                "Quality calculated",
                extra_fields={
                    "grade": result.grade,
                    "final_factor": str(final_factor),
                    "out_of_standard": result.is_out_of_standard,
                    "rejected": rejected,
                },
            )
            return result

    # =========================================================================
    # Steps
    # =========================================================================

    def _determine_grade(
        self,
        rule_set: GrainRuleSet,
        analysis: QualityAnalysis,
    ) -> Tuple[Optional[int], Dict[str, str], Optional[str]]:
        """Worst grade across the grading fields that were measured."""
        if not rule_set.has_grades:
            return None, {}, None

        grade_by_parameter: Dict[str, str] = {}
        worst_grade: Optional[int] = None
        worst_parameter: Optional[str] = None

        for parameter in rule_set.grade_parameters:
            value = measured_value(analysis, parameter.field, parameter.add_fields)
            if value is None:
                continue
            grade = next(
                (band.grade for band in parameter.bands if band.matches(value)),
                rule_set.worst_grade,
            )
            grade_by_parameter[parameter.field] = grade_label(grade)
            if worst_grade is None or grade > worst_grade:
                worst_grade = grade
                worst_parameter = parameter.field

        if worst_grade is None:
            # No grading field measured
            return None, grade_by_parameter, None
        return worst_grade, grade_by_parameter, worst_parameter

    def _special_bonuses(self, rule_set: GrainRuleSet, analysis: QualityAnalysis) -> List[BonusDetail]:
        bonuses = []

        protein_rule = rule_set.protein_bonus
        if protein_rule is not None and analysis.protein is not None:
            protein = analysis.protein
            if protein >= protein_rule.base:
                hectoliter = analysis.hectoliter_weight
                gate_passed = hectoliter is None or hectoliter >= protein_rule.hectoliter_gate
                bonus = (protein - protein_rule.base) * protein_rule.factor if gate_passed else ZERO
                if bonus > 0:
                    bonuses.append(BonusDetail(
                        concept="Bonificación por Proteína",
                        parameter="protein",
                        value=protein,
                        base=protein_rule.base,
                        factor=protein_rule.factor,
                        bonus_percent=bonus,
                        calculation=f"({protein} - {protein_rule.base}) × {protein_rule.factor} = {bonus:.2f}%",
                    ))
            else:
                factor = next(
                    band.factor for band in protein_rule.penalty_bands
                    if band.min_protein is None or protein >= band.min_protein
                )
                penalty = (protein_rule.base - protein) * factor
                bonuses.append(BonusDetail(
                    concept="Rebaja por Proteína",
                    parameter="protein",
                    value=protein,
                    base=protein_rule.base,
                    factor=factor,
                    bonus_percent=-penalty,
                    calculation=f"({protein_rule.base} - {protein}) × {factor} = -{penalty:.2f}%",
                ))

        fat_rule = rule_set.fat_bonus
        if fat_rule is not None and analysis.fat_content is not None:
            fat = analysis.fat_content
            bonus = (fat - fat_rule.base) * fat_rule.factor
            if bonus != 0:
                bonuses.append(BonusDetail(
                    concept="Bonificación por Materia Grasa" if bonus > 0 else "Rebaja por Materia Grasa",
                    parameter="fat_content",
                    value=fat,
                    base=fat_rule.base,
                    factor=fat_rule.factor,
                    bonus_percent=bonus,
                    calculation=f"({fat} - {fat_rule.base}) × {fat_rule.factor} = {bonus:.2f}%",
                ))

        if rule_set.hectoliter_bonus_bands and analysis.hectoliter_weight is not None:
            hectoliter = analysis.hectoliter_weight
            band = next(
                (b for b in rule_set.hectoliter_bonus_bands if hectoliter >= b.threshold),
                None,
            )
            if band is not None and band.bonus > 0:
                bonuses.append(BonusDetail(
                    concept="Bonificación por Peso Hectolítrico",
                    parameter="hectoliter_weight",
                    value=hectoliter,
                    base=band.threshold,
                    factor=band.bonus,
                    bonus_percent=band.bonus,
                    calculation=f"PH {hectoliter} ≥ {band.threshold} kg/hl = +{band.bonus}%",
                ))

        return bonuses

    def _analysis_month(self, analysis: QualityAnalysis) -> int:
        if analysis.analysis_date is not None:
            return analysis.analysis_date.month
        return (self.reference_date or date.today()).month

    def _discounts(
        self,
        rule_set: GrainRuleSet,
        analysis: QualityAnalysis,
        month: int,
    ) -> Tuple[List[DiscountDetail], bool, List[QualityWarning]]:
        details = []
        warnings = []
        rejected = False
        for rule in rule_set.discounts:
            value = measured_value(analysis, rule.field, rule.add_fields)
            if value is None:
                continue
            evaluation = evaluate_discount(rule, value, month)
            if evaluation.detail is not None:
                details.append(evaluation.detail)
            if evaluation.warning is not None:
                warnings.append(evaluation.warning)
            rejected = rejected or evaluation.rejected
        return details, rejected, warnings

    def _moisture_loss(
        self,
        table: MoistureLossTable,
        analysis: QualityAnalysis,
    ) -> Tuple[MoistureLoss, List[QualityWarning]]:
        lookup = table.lookup(analysis.humidity)
        quantity = analysis.quantity_kg if analysis.quantity_kg is not None else ZERO
        waste_kg = _round(quantity * lookup.total_waste / 100)

        warnings = []
        if lookup.beyond_table:
            warnings.append(QualityWarning(
                type="moisture_beyond_table",
                severity=Severity.WARNING,
                parameter="humidity",
                message=(
                    f"Humidity {analysis.humidity}% is outside the {table.display_name} table; "
                    f"using the last entry ({table.max_humidity}%)"
                ),
                value=analysis.humidity,
                threshold=table.max_humidity,
            ))

        moisture_loss = MoistureLoss(
            base_humidity=lookup.base_humidity,
            actual_humidity=analysis.humidity,
            rounded_humidity=lookup.rounded_humidity,
            drying_waste_percent=lookup.drying_waste,
            handling_waste_percent=lookup.handling_waste,
            total_waste_percent=lookup.total_waste,
            gross_quantity_kg=quantity,
            waste_kg=waste_kg,
            net_quantity_kg=quantity - waste_kg,
            requires_drying=lookup.requires_drying,
        )
        return moisture_loss, warnings

    def _out_of_standard(self, rule_set: GrainRuleSet, analysis: QualityAnalysis) -> List[QualityWarning]:
        warnings = []
        for condition in rule_set.out_of_standard:
            value = getattr(analysis, condition.field, None)
            if condition.evaluate(value):
                warnings.append(QualityWarning(
                    type="out_of_standard",
                    severity=Severity.CRITICAL,
                    parameter=condition.field,
                    message=f"Fuera de estándar: {condition.reason}",
                    value=value,
                    threshold=condition.threshold,
                ))
        return warnings

    # =========================================================================
    # Multi-lot and price helpers
    # =========================================================================

    def calculate_for_lots(self, analyses: List[QualityAnalysis]) -> AggregatedQualityResult:
        """
        Calculate every lot of a settlement and weight the results by quantity.

        Lots without quantity weigh zero; when no lot has a quantity the
        results are averaged evenly.

        Raises:
            ValueError: If analyses is empty or mixes products
            UnknownProductError: If the product has no rule set
        """
        if not analyses:
            raise ValueError("calculate_for_lots needs at least one analysis")

        products = {normalize_product(a.product) for a in analyses}
        if len(products) > 1:
            raise ValueError(f"Analyses mix products: {sorted(products)}")

        results = [self.calculate(a) for a in analyses]
        quantities = [a.quantity_kg if a.quantity_kg is not None else ZERO for a in analyses]
        total_quantity = sum(quantities, ZERO)

        if total_quantity > 0:
            weights = [q / total_quantity for q in quantities]
        else:
            weights = [Decimal(1) / len(results)] * len(results)

        def weighted(values: List[Decimal]) -> Decimal:
            return _round(sum((v * w for v, w in zip(values, weights)), ZERO), Decimal("0.001"))

        grades = [_grade_number(r.grade) for r in results]
        known_grades = [g for g in grades if g is not None]
        worst_grade = grade_label(max(known_grades)) if known_grades else None

        return AggregatedQualityResult(
            product=results[0].product,
            total_quantity_kg=total_quantity,
            weighted_factor=weighted([r.final_factor for r in results]),
            weighted_bonus=weighted([r.total_bonus for r in results]),
            weighted_discount=weighted([r.total_discount for r in results]),
            worst_grade=worst_grade,
            total_waste_kg=sum((r.moisture_loss.waste_kg for r in results), ZERO),
            total_net_quantity_kg=sum((r.moisture_loss.net_quantity_kg for r in results), ZERO),
            lots=[
                LotQuality(
                    ctg_number=r.ctg_number,
                    quantity_kg=q,
                    grade=r.grade,
                    final_factor=r.final_factor,
                )
                for r, q in zip(results, quantities)
            ],
            results=results,
        )


def compare_factors(calculated: Decimal, document: Decimal) -> FactorComparison:
    """
    Compare the calculated factor with the factor liquidated on the settlement.

    |difference| < 0.1 is OK, < 0.5 is WARNING, anything larger is CRITICAL.
    """
    difference = calculated - document
    magnitude = abs(difference)
    if magnitude < FACTOR_OK_TOLERANCE:
        status = DiscrepancyStatus.OK
        message = "Calculated factor matches the settlement"
    elif magnitude < FACTOR_WARNING_TOLERANCE:
        status = DiscrepancyStatus.WARNING
        message = f"Factor differs by {difference:+.3f} points"
    else:
        status = DiscrepancyStatus.CRITICAL
        message = f"Factor differs by {difference:+.3f} points; review the settlement"

    return FactorComparison(
        calculated_factor=calculated,
        document_factor=document,
        difference=difference,
        status=status,
        message=message,
    )


def calculate_price_adjustment(result: QualityResult, base_price_per_ton: Decimal) -> PriceAdjustment:
    """Apply a quality result to a base price per ton."""
    adjusted = _round(base_price_per_ton * result.final_factor / 100)
    gross_kg = result.moisture_loss.gross_quantity_kg
    net_kg = result.moisture_loss.net_quantity_kg
    return PriceAdjustment(
        base_price_per_ton=base_price_per_ton,
        adjusted_price_per_ton=adjusted,
        adjustment_percent=result.final_factor - BASE_FACTOR,
        gross_quantity_kg=gross_kg,
        net_quantity_kg=net_kg,
        gross_amount=_round(gross_kg / 1000 * adjusted),
        net_amount=_round(net_kg / 1000 * adjusted),
    )
