"""
MealStamp - Meal Analysis Aggregator

Pure reduction of food items into meal-level totals. Items without
metrics contribute zero to every total but still count as items.
"""

from mealstamp.core.state import HEALTHY_RATIO_THRESHOLD, FoodItem, MealAnalysis


def generate_meal_comment(food_items: list[FoodItem]) -> str:
    """Deterministic verdict text for a meal (not generated by the model)."""
    item_count = len(food_items)
    healthy_count = sum(1 for item in food_items if item.is_healthy)
    total_calories = sum(item.metrics.calories for item in food_items if item.metrics)
    total_protein = sum(item.metrics.protein for item in food_items if item.metrics)

    if item_count and healthy_count == item_count:
        return "Excellent meal choice! All items are nutritious and well-balanced."
    if item_count and healthy_count >= item_count * HEALTHY_RATIO_THRESHOLD:
        return (
            f"Good meal overall with {healthy_count} out of {item_count} healthy items. "
            f"Total: {total_calories}cal, {float(total_protein)}g protein."
        )
    return (
        "This meal could be improved. Consider adding more vegetables and reducing "
        f"processed foods. Total: {total_calories}cal."
    )


def build_meal_analysis(food_items: list[FoodItem], ai_comment: str | None = None) -> MealAnalysis:
    """
    Reduce food items into a MealAnalysis.

    Args:
        food_items: Items in segmentation order; metrics may be None
        ai_comment: Comment to attach; generated from the items when omitted

    Returns:
        A freshly computed MealAnalysis (same input, same output)
    """
    item_count = len(food_items)
    present = [item.metrics for item in food_items if item.metrics is not None]

    healthy_count = sum(1 for item in food_items if item.is_healthy)
    if item_count:
        # Items without metrics count as level 0
        average_processing_level = int(sum(m.processing_level for m in present) / item_count)
    else:
        average_processing_level = 0

    return MealAnalysis(
        food_items=list(food_items),
        total_calories=sum(m.calories for m in present),
        total_protein=sum(m.protein for m in present),
        total_fiber=sum(m.fiber for m in present),
        total_added_sugar=sum(m.added_sugar for m in present),
        total_saturated_fat=sum(m.saturated_fat for m in present),
        total_sodium=sum(m.sodium for m in present),
        total_vegetable_content=sum(m.vegetable_content for m in present),
        total_water=sum(m.water for m in present),
        average_processing_level=average_processing_level,
        is_healthy=item_count > 0 and healthy_count >= item_count * HEALTHY_RATIO_THRESHOLD,
        ai_comment=ai_comment if ai_comment is not None else generate_meal_comment(food_items),
    )
