from mealstamp.core.aggregator import build_meal_analysis, generate_meal_comment
from mealstamp.core.state import FoodItem, FoodMetrics

from conftest import metrics_payload


def _item(label: str, **overrides) -> FoodItem:
    return FoodItem(label=label, metrics=FoodMetrics.model_validate(metrics_payload(**overrides)))


def test_sums_present_metrics() -> None:
    items = [
        _item("rice", calories=200, protein=4.0, water=100.0),
        _item("chicken", calories=165, protein=31.0, water=60.0, sodium=70.0),
    ]
    analysis = build_meal_analysis(items)
    assert analysis.total_calories == 365
    assert analysis.total_protein == 35.0
    assert analysis.total_water == 160.0
    assert analysis.total_sodium == 75.0


def test_missing_metrics_count_as_items_but_add_nothing() -> None:
    items = [_item("rice", calories=200, processingLevel=3), FoodItem(label="mystery")]
    analysis = build_meal_analysis(items)
    assert analysis.total_calories == 200
    # (3 + 0) / 2 truncated
    assert analysis.average_processing_level == 1
    # 1 of 2 healthy is below the threshold
    assert analysis.is_healthy is False


def test_all_none_metrics_degrade_gracefully() -> None:
    items = [FoodItem(label="a"), FoodItem(label="b")]
    analysis = build_meal_analysis(items)
    assert analysis.total_calories == 0
    assert analysis.is_healthy is False
    assert analysis.average_processing_level == 0


def test_empty_list() -> None:
    analysis = build_meal_analysis([])
    assert analysis.is_healthy is False
    assert analysis.average_processing_level == 0
    assert analysis.ai_comment.startswith("This meal could be improved")


def test_healthy_threshold_is_0_67() -> None:
    items = [_item("a"), _item("b"), _item("c", isHealthy=False)]
    assert build_meal_analysis(items).is_healthy is False
    items = [_item("a"), _item("b"), _item("c"), _item("d", isHealthy=False)]
    assert build_meal_analysis(items).is_healthy is True


def test_rerun_is_identical() -> None:
    items = [_item("rice", calories=210), _item("fries", isHealthy=False), FoodItem(label="sauce")]
    first = build_meal_analysis(items)
    second = build_meal_analysis(items)
    assert first.model_dump_json() == second.model_dump_json()


def test_comment_rules() -> None:
    assert generate_meal_comment([_item("a"), _item("b")]).startswith("Excellent meal choice!")

    majority = [_item("a", calories=100, protein=10.0), _item("b", calories=50, protein=2.5),
                _item("c", isHealthy=False, calories=300, protein=0.0), _item("d")]
    comment = generate_meal_comment(majority)
    assert comment.startswith("Good meal overall with 3 out of 4 healthy items.")
    assert "Total: 650cal, 16.5g protein." in comment

    poor = [_item("a", isHealthy=False, calories=500), FoodItem(label="b")]
    assert generate_meal_comment(poor).endswith("Total: 500cal.")


def test_explicit_comment_is_kept() -> None:
    analysis = build_meal_analysis([_item("a")], ai_comment="Nice.")
    assert analysis.ai_comment == "Nice."


def test_comment_protein_keeps_decimal_point() -> None:
    items = [_item("a", protein=15.0), _item("b", protein=10.0), _item("c"), _item("d", isHealthy=False)]
    assert generate_meal_comment(items).endswith("Total: 800cal, 33.0g protein.")
