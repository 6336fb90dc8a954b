"""
Quality Engine Package

Regulatory quality calculation for delivered grain lots.

Features:
- One engine for every grain, parameterized by GrainRuleSet data
- Grade by the worst parameter, grade bonus/penalty table
- Protein, fat and hectoliter-weight bonuses
- Proportional, linear-scale, progressive and seasonal discounts
- Moisture loss from the official drying tables
- Quantity-weighted aggregation over the CTGs of a settlement

Usage:
    from quality_engine import QualityCalculationEngine

    engine = QualityCalculationEngine.with_defaults()
    result = engine.calculate(analysis)
    print(result.grade, result.final_factor)
"""

from .models import (
    # Enums
    Comparison,

    # Rule data
    GradeBand,
    GradeParameter,
    PenaltyBand,
    ProteinBonusRule,
    FatBonusRule,
    HectoliterBonusBand,
    ProgressiveTier,
    SeasonalBase,
    DiscountRule,
    OutOfStandardCondition,
    GrainRuleSet,
    grade_label,
)

from .rules import (
    PRODUCT_ALIASES,
    normalize_product,
    default_rule_sets,
    trigo_rule_set,
    maiz_rule_set,
    sorgo_rule_set,
    soja_rule_set,
    girasol_rule_set,
)

from .moisture import (
    MoistureLossTable,
    MoistureLookup,
    MoistureTableError,
    load_moisture_tables,
    round_up_to_tenth,
)

from .discounts import (
    DiscountEvaluation,
    evaluate_discount,
    progressive_amount,
)

from .engine import (
    QualityCalculationEngine,
    QualityEngineError,
    UnknownProductError,
    compare_factors,
    calculate_price_adjustment,
)

__all__ = [
    # Enums
    "Comparison",
    # Rule data
    "GradeBand",
    "GradeParameter",
    "PenaltyBand",
    "ProteinBonusRule",
    "FatBonusRule",
    "HectoliterBonusBand",
    "ProgressiveTier",
    "SeasonalBase",
    "DiscountRule",
    "OutOfStandardCondition",
    "GrainRuleSet",
    "grade_label",
    # Rule sets
    "PRODUCT_ALIASES",
    "normalize_product",
    "default_rule_sets",
    "trigo_rule_set",
    "maiz_rule_set",
    "sorgo_rule_set",
    "soja_rule_set",
    "girasol_rule_set",
    # Moisture
    "MoistureLossTable",
    "MoistureLookup",
    "MoistureTableError",
    "load_moisture_tables",
    "round_up_to_tenth",
    # Discounts
    "DiscountEvaluation",
    "evaluate_discount",
    "progressive_amount",
    # Engine
    "QualityCalculationEngine",
    "QualityEngineError",
    "UnknownProductError",
    "compare_factors",
    "calculate_price_adjustment",
]
