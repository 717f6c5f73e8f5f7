"""
MealStamp - Prompt Templates

Fixed prompts sent to the remote model. Placeholders use the
``{{NAME}}`` form and are filled with str.replace, since several
templates contain literal JSON braces.
"""

from mealstamp.core.state import UserProfile

SEGMENTATION_PROMPT = (
    "Give the segmentation masks for the food items. Output a JSON list of "
    "segmentation masks where each entry contains the 2D bounding box in the key "
    "\"box_2d\", the segmentation mask in key \"mask\", and the text label in the "
    "key \"label\". Use descriptive labels"
)

BATCH_FOOD_METRICS_PROMPT = """Analyze the nutritional content of these food items in the image: {{FOOD_LIST}}

Return a JSON object where each KEY is the EXACT food name from the list above, and the value contains its nutritional metrics.

Example format if the list was "rice, chicken, broccoli":
{
  "rice": {
    "calories": 200,
    "protein": 4,
    "fiber": 1,
    "addedSugar": 0,
    "saturatedFat": 0,
    "sodium": 5,
    "vegetableContent": 0,
    "water": 100,
    "processingLevel": 1,
    "isHealthy": true
  },
  "chicken": {
    "calories": 165,
    "protein": 31,
    ...
  },
  "broccoli": {
    ...
  }
}

Units: protein, fiber, addedSugar, saturatedFat and vegetableContent in grams, sodium in mg, water in ml.
processingLevel is 1 (unprocessed) to 5 (ultra-processed).
CRITICAL: Use the EXACT food names from the list "{{FOOD_LIST}}" as the JSON keys. Do NOT use generic names like "Food Item 1" or "Item 1".
Be accurate with nutritional values based on visible portions.
Return ONLY the JSON object, no additional text."""

ADVICE_PROMPT = """You are a supportive and knowledgeable health coach. Your goal is to provide EXTREMELY CONCISE daily advice (maximum 40 words) based on the user's current health metrics and meal usage.

Input Data:
{{CONTEXT}}

Rules for Analysis:
1. **Metric Comparison**: Compare current values to targets.
   - If a metric is significantly OFF (e.g. Calories > 110% of target, or Water < 50% of target), provide a gentle warning.
   - If metrics are on track, offer positive reinforcement.

2. **Meal Completeness & Timing**: Check "Meals Captured" and "Current Time".
   - Ideally, a user should have Breakfast, Lunch, and Dinner.
   - If they missed a meal clearly past its time (e.g. no lunch by 3 PM), ask if they skipped it.

3. **Meal Timing Check**:
   - Breakfast: Should be before 9:00 AM.
   - Lunch: Should be before 1:00 PM.
   - Dinner: Should be before 8:00 PM.
   - If a recent meal was late, gently suggest eating earlier for better digestion/sleep.

Output Format:
Return ONLY a single paragraph of text (string). NO JSON.
- Speak directly to the user ("You...", "Try to...").
- Keep it under 40 words.
- Combine the most important observations into a natural, encouraging message.
- If everything is perfect, just say something motivating!"""

MEAL_SUGGESTION_PROMPT = """You are a supportive and knowledgeable health coach. Your task is to ONLY suggest the NEXT meal.

Input Data:
{{CONTEXT}}

Task:
- Analyze what the user has already eaten and the "Current Time".
- Suggest a specific, healthy option for the RELEVANT next meal based on time:
   - Morning (04:00 - 10:00): Breakfast
   - mid-day (11:00 - 13:00): Lunch
   - Evening (17:00 - 20:00): Dinner
- CRITICAL: Include explicit mention of the KEY METRICS relevant to the user's PRIMARY GOAL (e.g. "Contains ~30g Protein" for Muscle Gain, or "Low calorie (~400kcal)" for Weight Loss).

Output Format:
Return a plain text response structured as follows:
- Start with a short, 1-sentence intro (e.g. "For your [MealType], try this:").
- Use a bulleted list for the food items or ingredients (start lines with "- ").
- End with a very short closing comment.
- Do NOT return JSON. Use \\n for line breaks."""


def build_batch_metrics_prompt(labels: list[str]) -> str:
    """Fill the phase-2 prompt with the comma-separated phase-1 labels."""
    return BATCH_FOOD_METRICS_PROMPT.replace("{{FOOD_LIST}}", ", ".join(labels))


def build_advice_prompt(context: str) -> str:
    return ADVICE_PROMPT.replace("{{CONTEXT}}", context)


def build_meal_suggestion_prompt(context: str) -> str:
    return MEAL_SUGGESTION_PROMPT.replace("{{CONTEXT}}", context)


GOAL_PLAN_PROMPT = """User Profile:
- Sex: {{SEX}}
- Age: {{AGE}}
- Height: {{HEIGHT}} cm
- Weight: {{WEIGHT}} kg
- Activity Level: {{ACTIVITY_LEVEL}}

Health Metrics & Context:
- Primary Goal: {{PRIMARY_GOAL}}
- Intensity: {{INTENSITY}}
- Secondary Focus: {{SECONDARY_FOCUS}}
- Health Conditions: {{HEALTH_CONDITIONS}}
- Dietary Pattern: {{DIETARY_PATTERN}}
- Medications: {{MEDICATIONS}}

Task:
Generate a "Detailed Daily Target" plan in JSON format.
The JSON must have the following structure:
{
  "title": "Short catchy title for the plan",
  "description": "A concise, motivating explanation of the strategy (approx 2 sentences).",
  "metrics": [
    {{DYNAMIC_METRICS}}
  ]
}

CRITICAL: For the 'value' field in metrics, you MUST provide a specific numeric target with units based on the user's profile.
Examples: '150g', '2000 kcal', '2.5 L', 'Before 9am', 'Low'.
Do NOT use generic text like 'Target Value'. Calculate or estimate a distinct number.

Ensure strictly valid JSON. Do not include markdown keys like ```json."""

# Metric labels requested for each primary goal, in display order
GOAL_METRIC_LABELS = {
    "Weight loss": ["Calories", "Protein", "Fiber"],
    "Maintain weight": ["Calories", "Protein", "Fiber"],
    "Muscle gain": ["Protein", "Calories", "Meal Timing"],
    "Improve energy": ["Carb Quality", "Hydration", "Water"],
    "Blood sugar control": ["Added Sugar", "Fiber", "Meal Timing"],
    "Heart health": ["Sodium", "Saturated Fat", "Fiber"],
    "Gut health": ["Calories", "Water", "Protein"],
}
DEFAULT_GOAL_METRIC_LABELS = ["Calories", "Protein", "Fiber"]


def goal_metric_labels(primary_goal: str) -> list[str]:
    return GOAL_METRIC_LABELS.get(primary_goal, DEFAULT_GOAL_METRIC_LABELS)


def build_goal_plan_prompt(profile: UserProfile) -> str:
    """Fill the daily target prompt from the profile and its goal's metric labels."""
    metrics_template = ",\n".join(
        f'{{ "label": "{label}", "value": "Target Value", "rationale": "Brief reason" }}'
        for label in goal_metric_labels(profile.primary_goal)
    )
    replacements = {
        "{{SEX}}": profile.sex,
        "{{AGE}}": str(profile.age),
        "{{HEIGHT}}": f"{profile.height:g}",
        "{{WEIGHT}}": f"{profile.weight:g}",
        "{{ACTIVITY_LEVEL}}": profile.activity_level.value,
        "{{PRIMARY_GOAL}}": profile.primary_goal,
        "{{INTENSITY}}": profile.goal_intensity,
        "{{SECONDARY_FOCUS}}": ", ".join(profile.secondary_goals),
        "{{HEALTH_CONDITIONS}}": ", ".join(profile.health_conditions),
        "{{DIETARY_PATTERN}}": profile.dietary_pattern,
        "{{MEDICATIONS}}": profile.medications,
        "{{DYNAMIC_METRICS}}": metrics_template,
    }
    prompt = GOAL_PLAN_PROMPT
    for placeholder, value in replacements.items():
        prompt = prompt.replace(placeholder, value)
    return prompt
