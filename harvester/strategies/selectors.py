"""Generic career-page selector and pattern constants with fallbacks.

Ordered by stability: data-* > role/aria > class names.
Each constant is a tuple so callers iterate until a match is found.
"""

import re

# --- Job card container ---
JOB_CARD_SELECTORS: tuple[str, ...] = (
    '[data-testid*="job"]',
    "[data-job-id]",
    '[class*="job-card"]',
    '[class*="job-listing"]',
    '[class*="job-item"]',
    ".job-posting",
    ".jobs-list-item",
    ".position-item",
    ".career-item",
    ".opening-item",
    ".opening",
    ".posting",
    '[class*="job-"]',
    'li[role="listitem"]',
)

# --- Title inside a card ---
CARD_TITLE_SELECTORS: tuple[str, ...] = (
    '[data-testid*="title"]',
    '[class*="title"]',
    "h2",
    "h3",
    "h4",
    "a",
)

# --- Location inside a card ---
CARD_LOCATION_SELECTORS: tuple[str, ...] = (
    '[data-testid*="location"]',
    '[class*="location"]',
    '[class*="office"]',
)

# --- Description / summary inside a card ---
CARD_DESCRIPTION_SELECTORS: tuple[str, ...] = (
    '[class*="description"]',
    '[class*="summary"]',
    "p",
)

# --- Last-resort role-name patterns (matched against visible text) ---
JOB_TITLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(?:(?:Senior|Sr\.?|Junior|Jr\.?|Staff|Principal|Lead)\s+)?"
        r"(?:Software|Frontend|Front[- ]End|Backend|Back[- ]End|Full[- ]?Stack|Mobile|iOS|Android|"
        r"Platform|Infrastructure|DevOps|Site Reliability|Data|Machine Learning|ML|QA|Security|Cloud)"
        r"\s+(?:Engineer|Developer)\b(?:\s*(?:I{1,3}|IV))?",
    ),
    re.compile(r"\b(?:(?:Senior|Sr\.?|Associate|Principal|Group)\s+)?(?:Product|Project|Program|Engineering)\s+Manager\b"),
    re.compile(r"\b(?:(?:Senior|Sr\.?|Junior|Lead|Staff)\s+)?Data\s+(?:Scientist|Analyst)\b"),
    re.compile(r"\b(?:(?:Senior|Sr\.?|Lead|Staff)\s+)?(?:UX|UI|Product|UX/UI|Visual)\s+Designer\b"),
    re.compile(r"\b(?:(?:Senior|Sr\.?|Lead)\s+)?(?:QA|Test|Quality Assurance)\s+(?:Engineer|Analyst)\b"),
)

# --- Navigation / chrome text that is never a job title ---
NOISE_TITLE_RE = re.compile(
    r"\b(apply|login|log in|sign in|sign up|search|menu|home|about|cookie|cookies|privacy)\b",
    re.IGNORECASE,
)

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 150
