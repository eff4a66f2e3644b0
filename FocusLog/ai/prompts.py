# FocusLog/ai/prompts.py

"""
All LLM prompts used by FocusLog.
"""

# --- Single-session categorization ---

CATEGORIZE_SYSTEM_PROMPT = (
    "You are a helpful assistant that categorizes computer activities. "
    "Respond with only the category name."
)

# Placeholders are substituted once each by plain text replacement, so user
# templates may contain other braces freely.
DEFAULT_CATEGORIZATION_PROMPT = """Categorize this activity into one of these categories:
{categories}

Activity: {appName} - {windowTitle}
Current category: {currentCategory}

Consider the category descriptions above when categorizing. If a category has a description, use it to guide your decision.

Respond with only the category name."""

PLACEHOLDER_CATEGORIES = "{categories}"
PLACEHOLDER_APP_NAME = "{appName}"
PLACEHOLDER_WINDOW_TITLE = "{windowTitle}"
PLACEHOLDER_CURRENT_CATEGORY = "{currentCategory}"


def fill_template(template: str, categories: str, app_name: str, window_title: str, current_category: str) -> str:
    """Replace the first occurrence of each placeholder; absent placeholders are simply skipped."""
    text = template.replace(PLACEHOLDER_CATEGORIES, categories, 1)
    text = text.replace(PLACEHOLDER_APP_NAME, app_name, 1)
    text = text.replace(PLACEHOLDER_WINDOW_TITLE, window_title, 1)
    return text.replace(PLACEHOLDER_CURRENT_CATEGORY, current_category, 1)


# --- Batch re-categorization ---

BATCH_SYSTEM_PROMPT = (
    "You are a helpful assistant that categorizes computer activities in bulk. "
    "Respond with only category names, one per activity, in the same order as the activities, "
    "separated by commas or newlines. Do not number them and do not add any other text."
)

BATCH_CATEGORIZATION_PROMPT = """Categorize each of the following activities from the application "{app_name}" into one of these categories:
{categories}
{app_description}{guidance}
Window titles:
{numbered_titles}

Respond with exactly {count} category names in the same order as the window titles above, separated by commas or newlines, without numbering."""

BATCH_APP_DESCRIPTION = '\nAbout "{app_name}": {description}\n'

BATCH_GUIDANCE = "\nAdditional instructions:\n{guidance}\n"


# --- Productivity score ---

SCORE_SYSTEM_PROMPT = "You are a productivity coach. Respond with valid JSON only."

SCORE_PROMPT = """Based on these activities, provide a productivity score from 1-10 and brief explanation:

{activity_summary}

Respond in JSON format: {{"score": number, "explanation": "string"}}"""


# --- Insights ---

INSIGHTS_SYSTEM_PROMPT = (
    "You are an AI productivity coach that analyzes time tracking data and provides actionable "
    "insights to improve productivity and work-life balance."
)

INSIGHTS_PROMPT = """Daily Productivity Analysis Request:
- Date Range: {range_name}
- Context: User is tracking their computer activity to improve productivity

Time per category:
{category_summary}

Most used applications:
{app_summary}

Please provide a comprehensive analysis including:
1. Overall productivity assessment
2. Potential time-wasting activities
3. Suggestions for improvement
4. Positive patterns to reinforce
5. Specific actionable recommendations

Focus on being helpful, encouraging, and practical. Keep it under 200 words."""

DEFAULT_INSIGHTS = [
    "Great job tracking your time! This is the first step toward better productivity awareness.",
    "Consider setting specific goals for each work session to maximize your productivity.",
    "Try using the Pomodoro Technique: 25 minutes of focused work followed by a 5-minute break.",
    "Review your most productive hours and schedule important tasks during those times.",
    "Take regular breaks to maintain focus and prevent burnout.",
]
