"""
System instructions and one-shot prompt builders.

Prompt builders are pure: the same validated request always yields the
same prompt text, which keeps cached results meaningful.
"""

from typing import List

from .models import (
    NONE_REPORTED,
    AdvancedHealthRequest,
    HealthInsightsRequest,
    WellnessEntryRequest,
)

CHAT_INSTRUCTION = """You are "Health Connect Bot". Your purpose is to give users general information about health and medicine in a professional manner. You are not a medical professional: what you provide is educational and is not medical advice. For any health concern, users should consult a qualified healthcare provider.

Guidelines:

* Be helpful, informative, empathetic and understanding.
* Keep a professional, neutral tone.
* Prefer clarity and simplicity, and structure answers so they are easy to read.
* Ask clarifying questions when the query is ambiguous.
* Acknowledge your limits as an AI; do not provide diagnoses or treatment plans.
* Advise users to see healthcare professionals for diagnosis and treatment.
* For a potential medical emergency, tell the user to call their local emergency number.
* Do not ask for personally identifiable information.
* Base answers on reliable medical sources and established science; avoid speculation.
* Welcome feedback, but note that you cannot implement changes yourself.

Format answers in Markdown: **bold** for important terms and section titles, `*` or `-` for lists with proper indentation, and clear sections where appropriate."""

THINKING_INSTRUCTION = """

IMPORTANT: You are running with a thinking process and MUST show it explicitly. Begin it with 'THINKING PROCESS:' and end it with 'RESPONSE_BEGINS_HEALTH_CONNECT:'.

The thinking process should be:
1.  **Step by step:** break the user's query into its components.
2.  **Internal monologue:** question the user's intent and the possible medical context.
3.  **Fact check:** verify your knowledge against the query.
4.  **Formulation:** draft the structure of the answer before finalizing it.

Example:
THINKING PROCESS:
- User is asking about [Topic].
- Key medical terms: [Term 1], [Term 2].
- Potential risks: [Risk].
- Strategy: general overview, then specific advice, then disclaimer.
- Self-correction: make sure I do not diagnose [Condition].
RESPONSE_BEGINS_HEALTH_CONNECT:
[Final Answer]"""

SYMPTOM_CHECKER_INSTRUCTION = """You are "Health Connect Symptom Checker". Your goal is a preliminary medical triage assessment.
Follow this structure:
1. **Gather information:** ask about the main symptom, onset, duration, severity (1-10) and associated symptoms, one question at a time.
2. **Red flags:** check immediately for red-flag symptoms (chest pain, difficulty breathing, severe bleeding, sudden weakness). If any is present, advise the user to seek emergency care immediately.
3. **Assessment:** list potential causes (differentials) and stress that this is NOT a diagnosis.
4. **Recommendation:** recommend one course of action:
   - **Emergency:** call emergency services.
   - **Urgent:** see a doctor within 24 hours.
   - **Routine:** schedule an appointment.
   - **Self-care:** home remedies and monitoring.

Always end with "I am an AI, not a doctor. This is for informational purposes only." """

WELLNESS_INSTRUCTION = """You are "Health Connect Wellness Companion". You analyze mood and mental-wellness journal entries.

Your analysis should cover:
1. **Sentiment:** the overall emotional tone (positive, negative, neutral, mixed).
2. **Emotions:** the specific emotions expressed (joy, sadness, anxiety, stress, frustration, gratitude, ...).
3. **Stress triggers:** stressors mentioned (work, relationships, health, finances, ...).
4. **Patterns:** recurring themes or changes in mood across entries, when there are several.
5. **Coping strategies:** personalized coping strategies, mindfulness exercises or positive affirmations.

Answer in Markdown with these sections:
- **Sentiment Summary**
- **Emotions Detected**
- **Potential Stressors**
- **Recommended Coping Strategies**

Be empathetic, supportive and non-judgmental. Encourage the user to seek professional help if they express severe distress or suicidal thoughts."""


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def has_detail(value: str) -> bool:
    """True when a free-text medical history field carries real content."""
    return bool(value) and value != NONE_REPORTED and len(value) > 5


def build_advanced_health_prompt(data: AdvancedHealthRequest) -> str:
    """Seven-category lifestyle analysis prompt."""
    conditions = has_detail(data.medical_conditions)
    medications = has_detail(data.medications)
    family = has_detail(data.family_history)

    lines: List[str] = [
        "You are a health advisor AI. Analyze the following health data and provide a detailed "
        "analysis in these categories: sleep, exercise, stress, nutrition, hydration, lifestyle, "
        "and overall health.",
        "Format your response as a JSON array of objects with these fields:",
        '- category: "sleep", "exercise", "stress", "nutrition", "hydration", "lifestyle", or "overall"',
        "- title: a title for this analysis section",
        "- analysis: a paragraph analyzing this aspect of health",
        "- recommendation: a specific, actionable recommendation",
        "- score: a health score (0-100) for this category",
        "",
        "Patient health data:",
        f"- Age: {data.age}",
        f"- Gender: {data.gender}",
        f"- Height: {data.height} cm",
        f"- Weight: {data.weight} kg",
        f"- BMI: {data.bmi} (Category: {data.bmi_category})",
        f"- Blood Glucose: {data.blood_glucose} mg/dL",
        f"- Sleep Hours: {data.sleep_hours} hours per day",
        f"- Sleep Quality: {data.sleep_quality}",
        f"- Exercise: {data.exercise_hours} hours per week",
        f"- Stress Level: {data.stress_level}/10",
        f"- Water Intake: {data.water_intake} liters per day",
        f"- Caffeine Intake: {data.caffeine} cups per day",
        f"- Diet Type: {data.diet}",
        "- Food Habits:",
        f"    * Regular meals: {_yes_no(data.regular_meals)}",
        f"    * Late night snacking: {_yes_no(data.late_night_snacking)}",
        f"    * Frequent fast food: {_yes_no(data.fast_food)}",
        f"    * High sugar consumption: {_yes_no(data.high_sugar)}",
        f"- Smoking Status: {data.smoking}",
        f"- Alcohol Consumption: {data.alcohol_consumption}",
        f"- Medical Conditions: {data.medical_conditions}",
        f"- Medications: {data.medications}",
        f"- Family History: {data.family_history}",
        "",
    ]
    if conditions or medications or family:
        lines.append(
            "IMPORTANT: The patient has provided medical history information. In your analysis "
            "and recommendations, address how their medical conditions, medications, and/or "
            "family history affect their health in EACH relevant category, not just lifestyle. "
            "Include specific advice tailored to their medical situation."
        )
        lines.append("")

    lines += [
        "Provide thorough but concise analysis for each category.",
        "",
        'For the "nutrition" category, include a detailed assessment of the diet type and food habits.',
        "",
        'For the "lifestyle" category, give specific insights about caffeine intake, smoking status, '
        "alcohol consumption, and medical history.",
    ]
    if conditions:
        lines.append(
            "Pay special attention to how the reported medical conditions might affect health "
            "outcomes, and make recommendations that take them into account."
        )
    if medications:
        lines.append(
            "Consider how the listed medications might affect other health factors and give "
            "appropriate guidance."
        )
    if family:
        lines.append("Factor in family history when assessing risk and making recommendations.")

    lines += [
        "",
        'For the "overall" category, give a comprehensive summary drawing on all other categories, '
        "and mention the impact of medical history, medications, and family background if provided.",
        "",
        "For the scores:",
        "- Use 80-100 for excellent habits",
        "- Use 60-79 for good but improvable habits",
        "- Use 40-59 for habits that need moderate improvement",
        "- Use 0-39 for habits that need significant improvement",
        "",
        "Return ONLY a valid JSON array with exactly 7 objects, one for each category.",
    ]
    return "\n".join(lines)


def build_health_insights_prompt(data: HealthInsightsRequest) -> str:
    """Four-insight profile summary prompt."""
    return "\n".join([
        "You are a medical AI analyst. Analyze the following patient health data and provide "
        "4 key health insights.",
        "",
        "Patient Data:",
        f"- Age: {data.age}",
        f"- Gender: {data.gender}",
        f"- Height: {data.height} cm",
        f"- Weight: {data.weight} kg",
        f"- BMI: {data.bmi} ({data.bmi_category})",
        f"- Blood Glucose: {data.blood_glucose} mg/dL",
        "",
        "Provide 4 insights in a JSON array. Each insight has:",
        '- title: short title (e.g. "BMI Status", "Glucose Levels")',
        "- content: a concise explanation (1-2 sentences)",
        '- type: one of ["normal", "warning", "critical", "positive"] based on medical standards.',
        "",
        "Example:",
        "[",
        '    { "title": "Healthy BMI", "content": "Your BMI is within the healthy range.", "type": "positive" },',
        '    { "title": "Elevated Glucose", "content": "Your blood glucose is slightly high.", "type": "warning" }',
        "]",
        "",
        "Return ONLY the JSON array.",
    ])


def build_wellness_prompt(data: WellnessEntryRequest) -> str:
    if data.date:
        return f"Date: {data.date}\n\nJournal Entry:\n{data.entry}"
    return f"Journal Entry:\n{data.entry}"
