"""
Server-side device classification from the User-Agent header.

Pattern lists are checked in order bot → tablet → mobile; anything else
with a user agent is a desktop.
"""
import re

BOT_PATTERNS = [r"bot", r"crawler", r"spider", r"scraper", r"headless", r"lighthouse"]

TABLET_PATTERNS = [r"ipad", r"tablet", r"kindle", r"silk", r"playbook", r"android(?!.*mobile)"]

MOBILE_PATTERNS = [
    r"android.+mobile", r"iphone", r"ipod", r"blackberry", r"iemobile",
    r"opera mini", r"windows phone", r"mobile", r"kaios",
]


def _matches(patterns: list[str], ua: str) -> bool:
    return any(re.search(p, ua) for p in patterns)


def detect_device_type(user_agent: str | None) -> str:
    """mobile | tablet | desktop | bot | unknown"""
    if not user_agent:
        return "unknown"
    ua = user_agent.lower()
    if _matches(BOT_PATTERNS, ua):
        return "bot"
    if _matches(TABLET_PATTERNS, ua):
        return "tablet"
    if _matches(MOBILE_PATTERNS, ua):
        return "mobile"
    return "desktop"

