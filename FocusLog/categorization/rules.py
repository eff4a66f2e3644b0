"""
Keyword rules mapping a domain or a process name onto the default categories.
"""
from typing import Optional, Sequence, Tuple

# Checked in order; first bucket with a matching substring wins.
WEBSITE_RULES: Sequence[Tuple[str, Sequence[str]]] = (
    ("social_media", ("facebook.com", "twitter.com", "instagram.com", "linkedin.com", "tiktok.com", "youtube.com")),
    ("productivity", ("gmail.com", "outlook.com", "notion.so", "trello.com", "asana.com", "slack.com")),
    ("development", ("github.com", "stackoverflow.com", "gitlab.com", "bitbucket.org")),
    ("news", ("news", "bbc", "cnn", "reuters")),
    ("shopping", ("amazon", "ebay", "shopify", "etsy")),
    ("entertainment", ("netflix", "spotify", "twitch", "reddit")),
)

APPLICATION_RULES: Sequence[Tuple[str, Sequence[str]]] = (
    ("development", ("code", "sublime", "webstorm", "intellij", "xcode", "android studio")),
    ("productivity", ("chrome", "firefox", "safari", "edge", "word", "excel", "powerpoint", "notion")),
    ("communication", ("slack", "discord", "teams", "zoom", "skype", "whatsapp")),
    ("entertainment", ("spotify", "itunes", "vlc", "netflix")),
    ("system", ("finder", "explorer", "terminal", "cmd")),
)

FALLBACK_CATEGORY = "other"


def _match(value: str, rules: Sequence[Tuple[str, Sequence[str]]]) -> str:
    value = (value or "").lower()
    for category, keywords in rules:
        if any(keyword in value for keyword in keywords):
            return category
    return FALLBACK_CATEGORY


def categorize_website(domain: str) -> str:
    return _match(domain, WEBSITE_RULES)


def categorize_application(process_name: str) -> str:
    return _match(process_name, APPLICATION_RULES)


def rule_category(process_name: str, url: Optional[str] = None, domain: Optional[str] = None) -> str:
    """Website rules when the activity has a URL or domain, application rules otherwise."""
    if url or domain:
        return categorize_website(domain or "")
    return categorize_application(process_name)
