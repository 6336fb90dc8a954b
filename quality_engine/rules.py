"""
Grain Rule Sets

Regulatory commercialization standards expressed as GrainRuleSet values:
- Trigo Pan (Norma XX): grades, protein bonus, proportional discounts
- Maíz (Norma XII): grades, hectoliter bonus, proportional discounts
- Sorgo Granífero (Norma XVIII): grades, hectoliter bonus, proportional discounts
- Soja (Norma XVII): no grades, progressive and linear-scale discounts
- Girasol (Norma XI): no grades, fat bonus, seasonal acidity table

Also normalizes product names as they appear on documents ("Maíz",
"Trigo Pan", "Soy") to the canonical rule-set keys.
"""

import re
from decimal import Decimal
from typing import Dict

from core.text import collapse_whitespace, strip_accents
from models.quality import DiscountShape

from .models import (
    Comparison,
    DiscountRule,
    FatBonusRule,
    GradeBand,
    GradeParameter,
    GrainRuleSet,
    HectoliterBonusBand,
    OutOfStandardCondition,
    PenaltyBand,
    ProgressiveTier,
    ProteinBonusRule,
    SeasonalBase,
)


# =============================================================================
# Product Normalization
# =============================================================================

PRODUCT_ALIASES = {
    # Trigo
    "TRIGO": "trigo",
    "TRIGO PAN": "trigo",
    "WHEAT": "trigo",
    # Maíz
    "MAIZ": "maiz",
    "MAIZ DENTADO": "maiz",
    "MAIZ FLINT": "maiz",
    "CORN": "maiz",
    "MAIZE": "maiz",
    # Sorgo
    "SORGO": "sorgo",
    "SORGO GRANIFERO": "sorgo",
    "SORGHUM": "sorgo",
    # Soja
    "SOJA": "soja",
    "SOY": "soja",
    "SOYBEAN": "soja",
    "SOYBEANS": "soja",
    # Girasol
    "GIRASOL": "girasol",
    "SUNFLOWER": "girasol",
}


def normalize_product(name: str) -> str:
    """
    Normalize a product name to its rule-set key.

    Args:
        name: Grain name from a document or analysis ("Maíz", "TRIGO PAN")

    Returns:
        Canonical key (e.g., "maiz"), or the cleaned lowercase name when the
        grain is not known
    """
    if not name:
        return ""

    clean_name = strip_accents(name).upper().strip()
    clean_name = re.sub(r"[.,;:\-()]+", " ", clean_name)
    clean_name = collapse_whitespace(clean_name)

    if clean_name in PRODUCT_ALIASES:
        return PRODUCT_ALIASES[clean_name]

    words = clean_name.split()
    if words and words[0] in PRODUCT_ALIASES:
        return PRODUCT_ALIASES[words[0]]

    return clean_name.lower()


# =============================================================================
# Rule Sets
# =============================================================================

def _d(value: str) -> Decimal:
    return Decimal(value)


def trigo_rule_set() -> GrainRuleSet:
    return GrainRuleSet(
        product="trigo",
        display_name="Trigo Pan",
        base_humidity=_d("14.0"),
        has_grades=True,
        grade_parameters=(
            GradeParameter("hectoliter_weight", (
                GradeBand(1, min_value=_d("79")),
                GradeBand(2, min_value=_d("76")),
                GradeBand(3, min_value=_d("73")),
            )),
            GradeParameter("foreign_matter", (
                GradeBand(1, max_value=_d("0.20")),
                GradeBand(2, max_value=_d("0.80")),
                GradeBand(3, max_value=_d("1.50")),
            )),
            GradeParameter("damaged_grains", (
                GradeBand(1, max_value=_d("2.0")),
                GradeBand(2, max_value=_d("3.0")),
                GradeBand(3, max_value=_d("5.0")),
            ), add_fields=("burned_grains",)),
            GradeParameter("broken_grains", (
                GradeBand(1, max_value=_d("1.0")),
                GradeBand(2, max_value=_d("2.0")),
                GradeBand(3, max_value=_d("3.0")),
            )),
            GradeParameter("panza_blanca", (
                GradeBand(1, max_value=_d("15")),
                GradeBand(2, max_value=_d("25")),
                GradeBand(3, max_value=_d("40")),
            )),
        ),
        grade_adjustments={1: _d("1.5"), 2: _d("0"), 3: _d("-1.0")},
        protein_bonus=ProteinBonusRule(
            base=_d("11.0"),
            factor=_d("2.0"),
            hectoliter_gate=_d("75"),
            penalty_bands=(
                PenaltyBand(_d("2.0"), min_protein=_d("10.0")),
                PenaltyBand(_d("3.0"), min_protein=_d("9.0")),
                PenaltyBand(_d("4.0")),
            ),
        ),
        discounts=(
            DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROPORTIONAL,
                         base=_d("1.50"), factor=_d("1.0")),
            DiscountRule("Granos Dañados", "damaged_grains", DiscountShape.PROPORTIONAL,
                         base=_d("5.0"), factor=_d("1.0"), add_fields=("burned_grains",)),
            DiscountRule("Panza Blanca", "panza_blanca", DiscountShape.PROPORTIONAL,
                         base=_d("20.0"), factor=_d("0.25")),
        ),
        out_of_standard=(
            OutOfStandardCondition("humidity", Comparison.GT, _d("18.0"), "Humedad mayor a 18%"),
            OutOfStandardCondition("hectoliter_weight", Comparison.LT, _d("68"), "Peso hectolítrico menor a 68 kg/hl"),
            OutOfStandardCondition("foreign_matter", Comparison.GT, _d("2.0"), "Materias extrañas mayor a 2%"),
        ),
    )


def maiz_rule_set() -> GrainRuleSet:
    return GrainRuleSet(
        product="maiz",
        display_name="Maíz",
        base_humidity=_d("14.5"),
        has_grades=True,
        grade_parameters=(
            GradeParameter("hectoliter_weight", (
                GradeBand(1, min_value=_d("75")),
                GradeBand(2, min_value=_d("72")),
                GradeBand(3, min_value=_d("69")),
            )),
            GradeParameter("damaged_grains", (
                GradeBand(1, max_value=_d("3.0")),
                GradeBand(2, max_value=_d("5.0")),
                GradeBand(3, max_value=_d("8.0")),
            )),
            GradeParameter("broken_grains", (
                GradeBand(1, max_value=_d("2.0")),
                GradeBand(2, max_value=_d("3.0")),
                GradeBand(3, max_value=_d("5.0")),
            )),
            GradeParameter("foreign_matter", (
                GradeBand(1, max_value=_d("1.0")),
                GradeBand(2, max_value=_d("1.5")),
                GradeBand(3, max_value=_d("2.0")),
            )),
        ),
        grade_adjustments={1: _d("1.0"), 2: _d("0"), 3: _d("-1.5")},
        hectoliter_bonus_bands=(
            HectoliterBonusBand(_d("77"), _d("1.0")),
            HectoliterBonusBand(_d("76"), _d("0.5")),
        ),
        discounts=(
            DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROPORTIONAL,
                         base=_d("1.5")),
            DiscountRule("Granos Quebrados", "broken_grains", DiscountShape.PROPORTIONAL,
                         base=_d("3.0")),
            DiscountRule("Granos Dañados", "damaged_grains", DiscountShape.PROPORTIONAL,
                         base=_d("5.0")),
        ),
        out_of_standard=(
            OutOfStandardCondition("humidity", Comparison.GT, _d("21.0"), "Humedad mayor a 21%"),
        ),
    )


def sorgo_rule_set() -> GrainRuleSet:
    return GrainRuleSet(
        product="sorgo",
        display_name="Sorgo Granífero",
        base_humidity=_d("15.0"),
        has_grades=True,
        grade_parameters=(
            GradeParameter("damaged_grains", (
                GradeBand(1, max_value=_d("2.0")),
                GradeBand(2, max_value=_d("4.0")),
                GradeBand(3, max_value=_d("6.0")),
            )),
            GradeParameter("foreign_matter", (
                GradeBand(1, max_value=_d("2.0")),
                GradeBand(2, max_value=_d("3.0")),
                GradeBand(3, max_value=_d("4.0")),
            )),
            GradeParameter("broken_grains", (
                GradeBand(1, max_value=_d("3.0")),
                GradeBand(2, max_value=_d("5.0")),
                GradeBand(3, max_value=_d("7.0")),
            )),
            GradeParameter("pest_damaged", (
                GradeBand(1, max_value=_d("0.5")),
                GradeBand(2, max_value=_d("1.0")),
            )),
        ),
        grade_adjustments={1: _d("1.0"), 2: _d("0"), 3: _d("-1.5")},
        hectoliter_bonus_bands=(
            HectoliterBonusBand(_d("74"), _d("0.5")),
        ),
        discounts=(
            DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROPORTIONAL,
                         base=_d("1.0")),
            DiscountRule("Granos Quebrados", "broken_grains", DiscountShape.PROPORTIONAL,
                         base=_d("2.0")),
            DiscountRule("Granos Dañados", "damaged_grains", DiscountShape.PROPORTIONAL,
                         base=_d("2.0")),
        ),
        out_of_standard=(
            OutOfStandardCondition("humidity", Comparison.GT, _d("20.0"), "Humedad mayor a 20%"),
        ),
    )


def soja_rule_set() -> GrainRuleSet:
    return GrainRuleSet(
        product="soja",
        display_name="Soja",
        base_humidity=_d("13.5"),
        discounts=(
            DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROGRESSIVE,
                         base=_d("1.0"),
                         tiers=(
                             ProgressiveTier(_d("1.0"), _d("3.0"), _d("1.0")),
                             ProgressiveTier(_d("3.0"), _d("999"), _d("1.5")),
                         )),
            DiscountRule("Granos Dañados", "damaged_grains", DiscountShape.PROPORTIONAL,
                         base=_d("5.0")),
            DiscountRule("Granos Verdes", "green_grains", DiscountShape.LINEAR_SCALE,
                         base=_d("5.0"), factor=_d("0.2"), tolerance=_d("10.0")),
            DiscountRule("Granos Quebrados", "broken_grains", DiscountShape.PROGRESSIVE,
                         base=_d("20.0"), tolerance=_d("30.0"),
                         tiers=(
                             ProgressiveTier(_d("20.0"), _d("25.0"), _d("0.25")),
                             ProgressiveTier(_d("25.0"), _d("30.0"), _d("0.5")),
                             ProgressiveTier(_d("30.0"), _d("999"), _d("0.75")),
                         )),
            DiscountRule("Granos Negros", "black_grains", DiscountShape.PROPORTIONAL,
                         base=_d("0.5"), factor=_d("1.5")),
        ),
        out_of_standard=(
            OutOfStandardCondition("humidity", Comparison.GT, _d("20.0"), "Humedad mayor a 20%"),
            OutOfStandardCondition("live_insects", Comparison.EQ, True, "Presencia de insectos vivos"),
        ),
    )


def girasol_rule_set() -> GrainRuleSet:
    return GrainRuleSet(
        product="girasol",
        display_name="Girasol",
        base_humidity=_d("11.0"),
        fat_bonus=FatBonusRule(base=_d("42.0"), factor=_d("2.0")),
        discounts=(
            DiscountRule("Materias Extrañas", "foreign_matter", DiscountShape.PROPORTIONAL,
                         base=_d("3.0")),
            DiscountRule("Acidez", "acidity", DiscountShape.SEASONAL_TABLE,
                         base=_d("1.5"), factor=_d("2.5"),
                         seasonal_bases=(
                             SeasonalBase(tuple(range(1, 9)), _d("1.5")),
                             SeasonalBase((9, 10, 11, 12), _d("2.0")),
                         ),
                         rejection_threshold=_d("2.0")),
        ),
        out_of_standard=(
            OutOfStandardCondition("humidity", Comparison.GT, _d("16.0"), "Humedad mayor a 16%"),
            OutOfStandardCondition("acidity", Comparison.GT, _d("2.0"), "Acidez mayor a 2%"),
        ),
    )


def default_rule_sets() -> Dict[str, GrainRuleSet]:
    """Build the standard rule sets keyed by canonical product."""
    rule_sets = [
        trigo_rule_set(),
        maiz_rule_set(),
        sorgo_rule_set(),
        soja_rule_set(),
        girasol_rule_set(),
    ]
    return {rs.product: rs for rs in rule_sets}
