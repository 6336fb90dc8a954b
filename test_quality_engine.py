"""
Quality Engine Tests

Covers the rule-set driven quality calculation:
1. Grade by worst parameter and grade adjustments
2. Protein, fat and hectoliter-weight bonuses
3. Proportional, linear-scale, progressive and seasonal discounts
4. Out-of-standard conditions and rejection
5. Multi-lot aggregation, factor comparison and price adjustment
"""

from datetime import date
from decimal import Decimal

import pytest


@pytest.fixture
def engine():
    from quality_engine import QualityCalculationEngine
    return QualityCalculationEngine.with_defaults(reference_date=date(2024, 3, 1))


def analysis(product, humidity="12.0", **values):
    from models.quality import QualityAnalysis
    return QualityAnalysis(ctg_number="10108765432", product=product, humidity=humidity, **values)


class TestGrading:
    """Grade is the worst grade among the measured parameters."""

    def test_worst_parameter_decides(self, engine):
        result = engine.calculate(analysis(
            "Trigo",
            hectoliter_weight="80",
            foreign_matter="0.5",
            damaged_grains="4.0",
            broken_grains="0.5",
        ))

        assert result.grade == "G3"
        assert result.worst_parameter == "damaged_grains"
        assert result.grade_by_parameter == {
            "hectoliter_weight": "G1",
            "foreign_matter": "G2",
            "damaged_grains": "G3",
            "broken_grains": "G1",
        }
        assert result.grade_adjustment == Decimal("-1.0")
        assert result.final_factor == Decimal("99.0")

    def test_burned_grains_count_as_damaged(self, engine):
        result = engine.calculate(analysis(
            "Trigo", hectoliter_weight="80", damaged_grains="1.5", burned_grains="1.0",
        ))

        assert result.grade_by_parameter["damaged_grains"] == "G2"

    def test_value_beyond_every_band_is_worst_grade(self, engine):
        result = engine.calculate(analysis("Trigo", hectoliter_weight="70"))

        assert result.grade == "G3"

    def test_no_grading_field_measured(self, engine):
        """A maize lot with only humidity measured has no grade and no adjustment."""
        result = engine.calculate(analysis("Maíz"))

        assert result.grade is None
        assert result.worst_parameter is None
        assert result.grade_by_parameter == {}
        assert result.grade_adjustment == Decimal("0")
        assert result.final_factor == Decimal("100")
        assert result.calculation_steps[0] == "Grado: - (peor parámetro: -)"

    def test_best_grade_bonus(self, engine):
        result = engine.calculate(analysis("Maíz", hectoliter_weight="75.5", foreign_matter="0.5"))

        assert result.grade == "G1"
        assert result.grade_adjustment == Decimal("1.0")

    def test_gradeless_product(self, engine):
        result = engine.calculate(analysis("Soja"))

        assert result.grade is None
        assert result.grade_adjustment == Decimal("0")
        assert result.final_factor == Decimal("100")


class TestBonuses:
    """Protein, fat and hectoliter-weight bonuses."""

    def test_protein_bonus(self, engine):
        result = engine.calculate(analysis("Trigo", hectoliter_weight="78", protein="12.5"))

        assert result.grade == "G2"
        assert result.total_bonus == Decimal("3.0")
        assert result.final_factor == Decimal("103.0")

    def test_protein_bonus_needs_hectoliter_weight(self, engine):
        """Below the 75 kg/hl gate protein earns no bonus."""
        result = engine.calculate(analysis("Trigo", hectoliter_weight="74", protein="12.5"))

        assert result.bonuses == []
        assert result.total_bonus == Decimal("0")

    def test_protein_penalty(self, engine):
        """9.5% protein: (11 - 9.5) × 3 = 4.5 points off."""
        result = engine.calculate(analysis("Trigo", hectoliter_weight="78", protein="9.5"))

        assert result.total_bonus == Decimal("-4.5")
        assert result.bonuses[0].concept == "Rebaja por Proteína"
        assert result.final_factor == Decimal("95.5")

    def test_fat_bonus_both_ways(self, engine):
        above = engine.calculate(analysis("Girasol", humidity="10.0", fat_content="44"))
        below = engine.calculate(analysis("Girasol", humidity="10.0", fat_content="40"))

        assert above.total_bonus == Decimal("4.0")
        assert below.total_bonus == Decimal("-4.0")

    def test_hectoliter_bonus(self, engine):
        result = engine.calculate(analysis("Maíz", hectoliter_weight="77.5"))

        assert result.total_bonus == Decimal("1.0")
        assert result.final_factor == Decimal("102.0")


class TestDiscounts:
    """Discount shapes."""

    def test_progressive_broken_grains(self, engine):
        """27% broken soy: 5 × 0.25 + 2 × 0.5 = 2.25."""
        result = engine.calculate(analysis("Soja", broken_grains="27"))

        assert result.total_discount == Decimal("2.25")
        assert result.final_factor == Decimal("97.75")
        assert len(result.discounts[0].tiers) == 2

    def test_progressive_within_base(self, engine):
        result = engine.calculate(analysis("Soja", broken_grains="18"))

        assert result.discounts == []

    def test_proportional(self, engine):
        result = engine.calculate(analysis("Soja", black_grains="1.5"))

        assert result.total_discount == Decimal("1.5")

    def test_linear_scale_tolerance_warning(self, engine):
        result = engine.calculate(analysis("Soja", green_grains="12"))

        assert result.total_discount == Decimal("1.4")
        assert [w.type for w in result.warnings] == ["tolerance_exceeded"]
        assert result.is_out_of_standard is False

    def test_seasonal_acidity_by_month(self, engine):
        march = engine.calculate(analysis(
            "Girasol", humidity="10.0", acidity="1.8", analysis_date="15/03/2024",
        ))
        october = engine.calculate(analysis(
            "Girasol", humidity="10.0", acidity="1.8", analysis_date="15/10/2024",
        ))

        assert march.total_discount == Decimal("0.75")
        assert october.total_discount == Decimal("0")

    def test_seasonal_uses_reference_date(self):
        from quality_engine import QualityCalculationEngine

        engine = QualityCalculationEngine.with_defaults(reference_date=date(2024, 10, 1))
        result = engine.calculate(analysis("Girasol", humidity="10.0", acidity="1.8"))

        assert result.discounts == []

    def test_acidity_rejection(self, engine):
        result = engine.calculate(analysis("Girasol", humidity="10.0", acidity="2.5"))

        assert result.is_rejected is True
        assert result.total_discount == Decimal("999")
        assert "rejection" in [w.type for w in result.warnings]


class TestOutOfStandard:

    def test_high_humidity(self, engine):
        result = engine.calculate(analysis("Trigo", humidity="19.0"))

        assert result.is_out_of_standard is True
        assert any(w.type == "out_of_standard" and w.parameter == "humidity" for w in result.warnings)

    def test_live_insects(self, engine):
        result = engine.calculate(analysis("Soja", live_insects=True))

        assert result.is_out_of_standard is True

    def test_clean_lot(self, engine):
        result = engine.calculate(analysis("Soja", live_insects=False))

        assert result.is_out_of_standard is False
        assert result.warnings == []


class TestProducts:

    @pytest.mark.parametrize("name,expected", [
        ("Maíz", "maiz"),
        ("TRIGO PAN", "trigo"),
        ("Soy", "soja"),
        ("Sorgo Granífero", "sorgo"),
        ("girasol", "girasol"),
    ])
    def test_normalize_product(self, name, expected):
        from quality_engine import normalize_product
        assert normalize_product(name) == expected

    def test_unknown_product(self, engine):
        from quality_engine import UnknownProductError

        with pytest.raises(UnknownProductError) as exc_info:
            engine.calculate(analysis("Cebada"))
        assert exc_info.value.product == "Cebada"
        assert "soja" in exc_info.value.known_products

    def test_custom_rule_set(self):
        """A new grain is data: a rule set and a moisture table."""
        from models.quality import DiscountShape
        from quality_engine import DiscountRule, GrainRuleSet, MoistureLossTable, QualityCalculationEngine

        rule_set = GrainRuleSet(
            product="cebada",
            display_name="Cebada",
            base_humidity=Decimal("12.5"),
            discounts=(DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROPORTIONAL,
                                    base=Decimal("1.0")),),
        )
        table = MoistureLossTable("cebada", "Cebada", Decimal("12.5"), Decimal("0.25"),
                                  {Decimal("12.6"): Decimal("0.5")})
        engine = QualityCalculationEngine({"cebada": rule_set}, {"cebada": table})

        result = engine.calculate(analysis("Cebada", humidity="12.6", foreign_matter="2.0", quantity_kg="10000"))

        assert result.final_factor == Decimal("99.0")
        assert result.moisture_loss.waste_kg == Decimal("75.00")

    def test_base_humidity_mismatch(self):
        """Rule set and moisture table must agree on the base humidity."""
        from dataclasses import replace
        from quality_engine import (
            QualityCalculationEngine, QualityEngineError, default_rule_sets, load_moisture_tables,
        )

        rule_sets = default_rule_sets()
        rule_sets["trigo"] = replace(rule_sets["trigo"], base_humidity=Decimal("16.0"))

        with pytest.raises(QualityEngineError) as exc_info:
            QualityCalculationEngine(rule_sets, load_moisture_tables())
        assert "trigo" in str(exc_info.value)


class TestDiscountRuleValidation:
    """Progressive tiers must be present, contiguous and ascending."""

    def progressive(self, *tiers):
        from models.quality import DiscountShape
        from quality_engine import DiscountRule, ProgressiveTier

        return DiscountRule(
            "Granos Quebrados", "broken_grains", DiscountShape.PROGRESSIVE, base=Decimal("20"),
            tiers=tuple(ProgressiveTier(Decimal(a), Decimal(b), Decimal(f)) for a, b, f in tiers),
        )

    def test_valid_tiers(self):
        rule = self.progressive(("20", "25", "0.25"), ("25", "30", "0.5"))
        assert len(rule.tiers) == 2

    def test_no_tiers(self):
        with pytest.raises(ValueError, match="needs tiers"):
            self.progressive()

    def test_gap_between_tiers(self):
        with pytest.raises(ValueError, match="not contiguous"):
            self.progressive(("20", "25", "0.25"), ("26", "30", "0.5"))

    def test_reversed_tier(self):
        with pytest.raises(ValueError, match="empty or reversed"):
            self.progressive(("25", "20", "0.25"))


class TestAggregation:
    """Multi-lot aggregation and comparison helpers."""

    def test_weighted_factor(self, engine):
        result = engine.calculate_for_lots([
            analysis("Soja", quantity_kg="30000"),
            analysis("Soja", broken_grains="27", quantity_kg="10000"),
        ])

        assert result.total_quantity_kg == Decimal("40000")
        assert result.weighted_factor == Decimal("99.438")
        assert result.weighted_discount == Decimal("0.563")
        assert len(result.lots) == 2

    def test_worst_grade_across_lots(self, engine):
        result = engine.calculate_for_lots([
            analysis("Trigo", hectoliter_weight="80", quantity_kg="30000"),
            analysis("Trigo", hectoliter_weight="74", quantity_kg="30000"),
        ])

        assert result.worst_grade == "G3"

    def test_mixed_products_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.calculate_for_lots([analysis("Soja"), analysis("Trigo")])

    def test_empty_lots_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.calculate_for_lots([])

    @pytest.mark.parametrize("document,status", [
        ("99.45", "OK"),
        ("99.2", "WARNING"),
        ("98.5", "CRITICAL"),
    ])
    def test_compare_factors(self, document, status):
        from quality_engine import compare_factors

        comparison = compare_factors(Decimal("99.5"), Decimal(document))
        assert comparison.status.name == status

    def test_price_adjustment(self, engine):
        from quality_engine import calculate_price_adjustment

        result = engine.calculate(analysis("Soja", broken_grains="27", quantity_kg="10000"))
        adjustment = calculate_price_adjustment(result, Decimal("300"))

        assert adjustment.adjusted_price_per_ton == Decimal("293.25")
        assert adjustment.adjustment_percent == Decimal("-2.25")
        assert adjustment.gross_amount == Decimal("2932.50")
        assert adjustment.net_amount == Decimal("2932.50")
