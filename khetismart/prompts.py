"""Prompt templates for the Kalimati market lookups and the farming assistant."""

MARKET_PRICES_PROMPT = """
Access the current "Daily Price List" from the "Kalimati Fruits and Vegetable Market Development Board" website and other Nepal retail market sources if needed.

Extract ALL available items. I need a comprehensive list including:
1. Vegetables (Potato, Onion, Cauliflower, etc.)
2. Fruits (Apple, Banana, Lime, etc.)
3. Grains/Cereals (Rice, Lentils/Pulse, Wheat - if listed in daily reports)
4. Spices (Ginger, Garlic, Chili)

Return a STRICT JSON Array. Schema:
[{
  "id": "kebab-case-name",
  "name": "Item Name (English)",
  "price": number (Average Wholesale Price in NPR),
  "unit": "kg",
  "trend": "up" | "down" | "stable",
  "category": "Vegetable" | "Fruit" | "Grain" | "Spice" | "Other"
}]

Instructions:
1. Extract at least 50-70 items.
2. Use the "Average" price.
3. Classify each item into the correct category.
4. Output raw JSON only.
"""

HISTORY_PROMPT_TEMPLATE = """
Find wholesale prices for {crop_name} in Kathmandu (Kalimati) for the last 7 days.
Output strictly a JSON array sorted by date:
[{{ "date": "MMM DD", "price": number }}]

No markdown.
"""

PREDICTION_PROMPT_TEMPLATE = (
    "Predict the market trend for {crop_name} in Kathmandu over the next week "
    "based on typical seasonal trends. Brief (max 50 words)."
)

# ==================== ASSISTANT ====================

SYSTEM_MSG_ADVISOR = (
    "You are an expert agricultural consultant for Nepal named 'KhetiSmart Assistant'. "
    "Provide concise, practical advice for farmers in the Kathmandu Valley region. "
    "Use simple language."
)

GUIDE_PROMPT_TEMPLATE = """
Provide a detailed, step-by-step farming guide for "{crop_name}" specifically for Nepal.

You MUST write the response in **Nepali language** (Devanagari script).

Include the following sections clearly:
1. Suitable Season (उपयुक्त मौसम) & Time (समय)
2. Weather & Climate Requirements (हावापानी)
3. Soil Preparation (जमिनको तयारी)
4. Sowing Method (रोप्ने तरिका)
5. Irrigation & Fertilizer (सिँचाइ र मलखाद)
6. Harvesting (बाली भित्र्याउने)

Format using Markdown with bold headings. Keep it practical and easy for a farmer to understand.
"""

CROP_HEALTH_PROMPT = (
    "Analyze this image of a crop. Identify the plant, any potential diseases or "
    "nutrient deficiencies, and suggest organic remedies suitable for Nepal. "
    "Format the output with clear headings."
)


def history_prompt(crop_name: str) -> str:
    return HISTORY_PROMPT_TEMPLATE.format(crop_name=crop_name)


def prediction_prompt(crop_name: str) -> str:
    return PREDICTION_PROMPT_TEMPLATE.format(crop_name=crop_name)


def guide_prompt(crop_name: str) -> str:
    return GUIDE_PROMPT_TEMPLATE.format(crop_name=crop_name)
