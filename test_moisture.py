"""
Moisture Loss Tests

Covers the drying-waste tables:
1. Humidity rounding up to the next tenth
2. Table lookup with and without handling waste
3. Readings beyond the table
4. Loading errors
"""

import json
from decimal import Decimal

import pytest


@pytest.fixture(scope="module")
def tables():
    from quality_engine.moisture import load_moisture_tables
    return load_moisture_tables()


class TestRounding:

    @pytest.mark.parametrize("humidity,expected", [
        ("15.05", "15.1"),
        ("15.1", "15.1"),
        ("15.11", "15.2"),
        ("14", "14.0"),
    ])
    def test_round_up_to_tenth(self, humidity, expected):
        from quality_engine.moisture import round_up_to_tenth
        assert round_up_to_tenth(Decimal(humidity)) == Decimal(expected)


class TestLookup:

    def test_shipped_products(self, tables):
        assert sorted(tables) == ["girasol", "maiz", "soja", "sorgo", "trigo"]

    def test_soy_rounds_up(self, tables):
        """15.05% soy reads the 15.1% row: 2.41 drying + 0.25 handling."""
        lookup = tables["soja"].lookup(Decimal("15.05"))

        assert lookup.rounded_humidity == Decimal("15.1")
        assert lookup.drying_waste == Decimal("2.41")
        assert lookup.total_waste == Decimal("2.66")
        assert lookup.requires_drying is True

    def test_at_base_humidity_no_waste(self, tables):
        lookup = tables["soja"].lookup(Decimal("13.5"))

        assert lookup.requires_drying is False
        assert lookup.total_waste == Decimal("0")

    @pytest.mark.parametrize("product,humidity,drying", [
        ("trigo", "14.1", "0.69"),
        ("maiz", "15.0", "1.73"),
        ("sorgo", "25.0", "13.29"),
        ("girasol", "12.0", "1.68"),
    ])
    def test_table_values(self, tables, product, humidity, drying):
        assert tables[product].lookup(Decimal(humidity)).drying_waste == Decimal(drying)

    def test_beyond_table_uses_last_entry(self, tables):
        lookup = tables["soja"].lookup(Decimal("26.3"))

        assert lookup.beyond_table is True
        assert lookup.drying_waste == Decimal("13.79")


class TestEngineMoisture:
    """Moisture loss as reported in a QualityResult."""

    def test_waste_kg(self, tables):
        from models.quality import QualityAnalysis
        from quality_engine import QualityCalculationEngine, default_rule_sets

        engine = QualityCalculationEngine(default_rule_sets(), tables)
        result = engine.calculate(QualityAnalysis(
            ctg_number="1", product="Soja", humidity="15.05", quantity_kg="30000",
        ))

        assert result.moisture_loss.waste_kg == Decimal("798.00")
        assert result.moisture_loss.net_quantity_kg == Decimal("29202.00")

    def test_beyond_table_warning(self, tables):
        from models.quality import QualityAnalysis
        from quality_engine import QualityCalculationEngine, default_rule_sets

        engine = QualityCalculationEngine(default_rule_sets(), tables)
        result = engine.calculate(QualityAnalysis(ctg_number="1", product="Soja", humidity="26"))

        assert "moisture_beyond_table" in [w.type for w in result.warnings]


class TestLoading:

    def test_missing_file(self, tmp_path):
        from quality_engine.moisture import MoistureTableError, load_moisture_tables

        with pytest.raises(MoistureTableError):
            load_moisture_tables(tmp_path / "missing.json")

    def test_malformed_table(self, tmp_path):
        from quality_engine.moisture import MoistureTableError, load_moisture_tables

        path = tmp_path / "tables.json"
        path.write_text(json.dumps({"soja": {"base_humidity": 13.5}}), encoding="utf-8")

        with pytest.raises(MoistureTableError):
            load_moisture_tables(path)

    def test_custom_file(self, tmp_path):
        from quality_engine.moisture import load_moisture_tables

        path = tmp_path / "tables.json"
        path.write_text(json.dumps({
            "cebada": {"product": "Cebada", "base_humidity": 12.5, "handling_waste": 0.25,
                       "entries": [[12.6, 0.5], [12.7, 0.6]]},
        }), encoding="utf-8")

        tables = load_moisture_tables(path)
        assert tables["cebada"].max_humidity == Decimal("12.7")
        assert tables["cebada"].display_name == "Cebada"
