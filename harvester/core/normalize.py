"""Normalization helpers that turn loosely-typed scraped fields into a ScrapedJob.

Every strategy builds its records through ``build_job`` so that identity,
defaults and derived fields are computed in exactly one place.
"""

import hashlib
import html
import re
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from harvester.core.errors import ParseError
from harvester.core.schemas import (
    CompanyConfig,
    EmploymentType,
    ExperienceLevel,
    JobLocation,
    JobSource,
    SalaryInfo,
    SalaryPeriod,
    ScrapedJob,
    ScrapeMethod,
    WorkType,
    utcnow,
)

MAX_DESCRIPTION_CHARS = 5000

METHOD_CONFIDENCE: dict[ScrapeMethod, float] = {
    "api": 0.95,
    "json_ld": 0.9,
    "data_island": 0.8,
    "browser_automation": 0.7,
    "html_parsing": 0.6,
    "ai_extraction": 0.5,
}

# --- Title normalization ---
_ABBREVIATIONS: dict[str, str] = {
    "sr": "senior",
    "snr": "senior",
    "jr": "junior",
    "eng": "engineer",
    "engr": "engineer",
    "mgr": "manager",
    "dev": "developer",
    "swe": "software engineer",
}

_TITLE_SYNONYMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bback end\b"), "backend"),
    (re.compile(r"\bfront end\b"), "frontend"),
    (re.compile(r"\bfull stack\b"), "fullstack"),
    (re.compile(r"\bsoftware developer\b"), "software engineer"),
)

_TITLE_PUNCTUATION = re.compile(r"[^\w\s+#]")

# --- Location / work type ---
_REMOTE_RE = re.compile(
    r"\b(remote|work from home|wfh|telecommut\w*|anywhere|distributed)\b", re.IGNORECASE,
)
_HYBRID_RE = re.compile(r"\bhybrid\b", re.IGNORECASE)
_ONSITE_RE = re.compile(r"\b(on-?site|on site|in[- ]office|in[- ]person)\b", re.IGNORECASE)

_WORK_TYPE_HINTS: dict[str, WorkType] = {
    "remote": "remote",
    "telecommute": "remote",
    "fullyremote": "remote",
    "hybrid": "hybrid",
    "onsite": "onsite",
    "inoffice": "onsite",
    "office": "onsite",
}

# --- Employment type ---
_EMPLOYMENT_HINTS: dict[str, EmploymentType] = {
    "fulltime": "full-time",
    "permanent": "full-time",
    "parttime": "part-time",
    "contract": "contract",
    "contractor": "contract",
    "temporary": "contract",
    "temp": "contract",
    "intern": "internship",
    "internship": "internship",
    "freelance": "freelance",
    "freelancer": "freelance",
}

_EMPLOYMENT_PATTERNS: tuple[tuple[re.Pattern[str], EmploymentType], ...] = (
    (re.compile(r"\b(intern|internship|co-?op)\b", re.IGNORECASE), "internship"),
    (re.compile(r"\b(contract|contractor|temporary|fixed[- ]term)\b", re.IGNORECASE), "contract"),
    (re.compile(r"\bpart[- ]time\b", re.IGNORECASE), "part-time"),
    (re.compile(r"\bfreelance\b", re.IGNORECASE), "freelance"),
)

# --- Experience level ---
_EXPERIENCE_PATTERNS: tuple[tuple[re.Pattern[str], ExperienceLevel], ...] = (
    (
        re.compile(
            r"\b(director|vp|vice president|head of|chief|cto|ceo|cfo|executive)\b",
            re.IGNORECASE,
        ),
        "executive",
    ),
    (re.compile(r"\bprincipal\b", re.IGNORECASE), "principal"),
    (re.compile(r"\b(staff|lead)\b", re.IGNORECASE), "staff"),
    (re.compile(r"\b(senior|sr)\b", re.IGNORECASE), "senior"),
    (
        re.compile(
            r"\b(junior|jr|entry[- ]level|entry|intern|internship|graduate|new grad)\b",
            re.IGNORECASE,
        ),
        "entry",
    ),
    (re.compile(r"\b(mid[- ]level|mid[- ]senior|intermediate)\b", re.IGNORECASE), "mid"),
)

_YEARS_RE = re.compile(r"(\d{1,2})\+?\s*(?:-\s*\d{1,2}\s*)?years?", re.IGNORECASE)

# --- Salary ---
_PERIOD_ALIASES: dict[str, SalaryPeriod] = {
    "hour": "hourly",
    "hourly": "hourly",
    "hr": "hourly",
    "day": "daily",
    "daily": "daily",
    "week": "weekly",
    "weekly": "weekly",
    "month": "monthly",
    "monthly": "monthly",
    "year": "yearly",
    "yearly": "yearly",
    "annual": "yearly",
    "annually": "yearly",
    "annum": "yearly",
}

_YEARLY_MULTIPLIER: dict[SalaryPeriod, int] = {
    "hourly": 2080,
    "daily": 260,
    "weekly": 52,
    "monthly": 12,
    "yearly": 1,
}

_CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
_CURRENCY_CODE_RE = re.compile(r"\b(USD|EUR|GBP|CAD|AUD|CHF|INR)\b")
_SALARY_RANGE_RE = re.compile(
    r"(?P<cur>[$€£])?\s*(?P<min>\d[\d,]*(?:\.\d+)?)\s*(?P<k1>[kK])?"
    r"(?:\s*(?:-|–|to)\s*[$€£]?\s*(?P<max>\d[\d,]*(?:\.\d+)?)\s*(?P<k2>[kK])?)?",
)
_SALARY_PERIOD_RE = re.compile(
    r"(?:/|per\s+|an?\s+)(hour|hr|day|week|month|year|annum)\b|\b(hourly|daily|weekly|monthly|yearly|annually)\b",
    re.IGNORECASE,
)

# --- Skills taxonomy ---
SKILL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "languages": (
        "Python", "JavaScript", "TypeScript", "Java", "Kotlin", "Scala", "Golang",
        "Rust", "Ruby", "PHP", "C++", "C#", "Swift", "Elixir", "SQL",
    ),
    "frontend": ("React", "Vue", "Angular", "Svelte", "Next.js", "Redux", "HTML", "CSS", "Tailwind"),
    "backend": (
        "Node.js", "Django", "Flask", "FastAPI", "Spring", "Rails", ".NET", "Express",
        "GraphQL", "gRPC",
    ),
    "data": (
        "PostgreSQL", "MySQL", "MongoDB", "Redis", "Elasticsearch", "Kafka", "Spark",
        "Airflow", "Snowflake", "dbt", "Pandas",
    ),
    "cloud": ("AWS", "GCP", "Azure", "Kubernetes", "Docker", "Terraform", "Linux"),
    "ml": ("PyTorch", "TensorFlow", "scikit-learn", "LLM", "Machine Learning", "NLP"),
    "tools": ("Git", "CI/CD", "Jenkins", "Figma", "Jira"),
}

_SKILL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (skill, re.compile(r"(?<![\w+#.])" + re.escape(skill) + r"(?![\w+#])", re.IGNORECASE))
    for skills in SKILL_CATEGORIES.values()
    for skill in skills
)

_REQUIREMENT_RE = re.compile(
    r"(\d+\+?\s*years?|degree in|bachelor|master'?s|ph\.?d|proficien\w+|experience (?:with|in)|"
    r"familiarity with|knowledge of)",
    re.IGNORECASE,
)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+|\s*[•·]\s*")
_LIST_SPLIT_RE = re.compile(r"\n+|\s*[•·;]\s*")

_TRACKING_PARAMS = frozenset({"ref", "source", "gh_src", "lever-source", "src"})
_WORKDAY_POSTED_RE = re.compile(
    r"posted\s+(?:(today)|(yesterday)|(\d+)\+?\s+days?\s+ago)", re.IGNORECASE,
)


def _collapse(text: str) -> str:
    return " ".join(text.split())


def job_hash(company_id: str, title: str, location: str) -> str:
    """Deterministic content hash for (company, title, location).

    Case and whitespace differences do not change the hash, so a re-scrape of
    an unchanged posting reproduces the same id.
    """
    key = "|".join(_collapse(part).lower() for part in (company_id, title, location))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation, expand abbreviations and map synonyms."""
    text = _TITLE_PUNCTUATION.sub(" ", title.lower())
    tokens = [_ABBREVIATIONS.get(token, token) for token in text.split()]
    text = " ".join(tokens)
    for pattern, replacement in _TITLE_SYNONYMS:
        text = pattern.sub(replacement, text)
    return _collapse(text)


def normalize_company(name: str) -> str:
    return _collapse(_TITLE_PUNCTUATION.sub(" ", name.lower()))


def parse_location(raw: str, *, remote_hint: bool | None = None) -> JobLocation:
    """Split a free-text location into remote flag, city, state and country."""
    raw = _collapse(raw or "")
    is_remote = bool(remote_hint) or bool(_REMOTE_RE.search(raw))
    parts = [
        p.strip() for p in re.split(r"[,;/|]", raw)
        if p.strip() and not _REMOTE_RE.fullmatch(p.strip())
    ]
    city = state = country = ""
    if len(parts) == 1:
        city = parts[0]
    elif len(parts) == 2:
        city = parts[0]
        if re.fullmatch(r"[A-Z]{2}", parts[1]):
            state = parts[1]
        else:
            country = parts[1]
    elif len(parts) >= 3:
        city, state, country = parts[0], parts[1], parts[-1]
    return JobLocation(
        raw=raw,
        normalized=raw.lower(),
        is_remote=is_remote,
        city=city,
        state=state,
        country=country,
    )


def _hint_key(hint: str) -> str:
    return re.sub(r"[\s_\-]", "", hint.lower())


def detect_work_type(
    *,
    hint: str | None = None,
    location: str = "",
    title: str = "",
    description: str = "",
) -> WorkType:
    """Work arrangement from an explicit hint, then location/title, then description."""
    if hint:
        mapped = _WORK_TYPE_HINTS.get(_hint_key(hint))
        if mapped:
            return mapped
    for text in (f"{location} {title}", description):
        if _HYBRID_RE.search(text):
            return "hybrid"
        if _REMOTE_RE.search(text):
            return "remote"
        if _ONSITE_RE.search(text):
            return "onsite"
    return "onsite"


def detect_employment_type(*, hint: str | None = None, text: str = "") -> EmploymentType:
    if hint:
        mapped = _EMPLOYMENT_HINTS.get(_hint_key(hint))
        if mapped:
            return mapped
        text = f"{hint} {text}"
    for pattern, employment_type in _EMPLOYMENT_PATTERNS:
        if pattern.search(text):
            return employment_type
    return "full-time"


def detect_experience_level(
    title: str,
    description: str = "",
    *,
    hint: str | None = None,
) -> ExperienceLevel:
    """Seniority from the title first (most reliable), then a hint, then years asked for."""
    for text in (title, hint or ""):
        for pattern, level in _EXPERIENCE_PATTERNS:
            if pattern.search(text):
                return level

    years = [int(m.group(1)) for m in _YEARS_RE.finditer(description)]
    if years:
        asked = min(years)
        if asked < 2:
            return "entry"
        if asked >= 8:
            return "staff"
        if asked >= 5:
            return "senior"
    return "mid"


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return None


def normalize_salary(
    minimum: Any = None,
    maximum: Any = None,
    *,
    currency: str | None = None,
    period: str | None = None,
) -> SalaryInfo:
    """Convert a salary range to yearly figures. Unknown periods are assumed yearly."""
    low = _to_float(minimum)
    high = _to_float(maximum)
    if low is None and high is None:
        return SalaryInfo()
    if low is not None and high is not None and low > high:
        low, high = high, low

    source_period = _PERIOD_ALIASES.get((period or "yearly").strip().lower(), "yearly")
    factor = _YEARLY_MULTIPLIER[source_period]
    return SalaryInfo(
        min=round(low * factor, 2) if low is not None else None,
        max=round(high * factor, 2) if high is not None else None,
        currency=(currency or "USD").strip().upper() or "USD",
        period="yearly",
        is_disclosed=True,
    )


def parse_salary_text(text: str | None) -> SalaryInfo:
    """Best-effort parse of strings like "$120k - $150k" or "€45/hour".

    Requires a currency marker or a ``k`` suffix so that "5-7 years" is not
    mistaken for a salary.
    """
    if not text:
        return SalaryInfo()
    code_match = _CURRENCY_CODE_RE.search(text)
    for match in _SALARY_RANGE_RE.finditer(text):
        symbol = match.group("cur")
        if not (symbol or code_match or match.group("k1") or match.group("k2")):
            continue
        low = _to_float(match.group("min"))
        high = _to_float(match.group("max"))
        if low is not None and match.group("k1"):
            low *= 1000
        if high is not None and (match.group("k2") or match.group("k1")):
            high *= 1000
        currency = _CURRENCY_SYMBOLS.get(symbol or "", code_match.group(1) if code_match else "USD")
        period_match = _SALARY_PERIOD_RE.search(text, match.end())
        period = None
        if period_match:
            period = (period_match.group(1) or period_match.group(2)).lower()
        return normalize_salary(low, high, currency=currency, period=period)
    return SalaryInfo()


def extract_skills(text: str) -> list[str]:
    """Skills from the taxonomy mentioned in ``text``, in taxonomy order."""
    if not text:
        return []
    return [skill for skill, pattern in _SKILL_PATTERNS if pattern.search(text)]


def merge_skills(provided: Iterable[str], text: str) -> list[str]:
    seen: set[str] = set()
    merged: list[str] = []
    for skill in [*provided, *extract_skills(text)]:
        cleaned = _collapse(str(skill))
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            merged.append(cleaned)
    return merged


def strip_html(text: str) -> str:
    if not text:
        return ""
    text = html.unescape(text)
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return _collapse(text)


def clean_description(text: str | None, max_chars: int = MAX_DESCRIPTION_CHARS) -> str:
    return strip_html(text or "")[:max_chars]


def extract_requirements(description: str, limit: int = 10) -> list[str]:
    """Sentences that read like requirements (years, degrees, proficiency)."""
    found: list[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(description):
        sentence = sentence.strip()
        if 10 < len(sentence) <= 300 and _REQUIREMENT_RE.search(sentence):
            found.append(sentence)
            if len(found) >= limit:
                break
    return found


def split_list(value: Any, *, min_length: int = 1, pattern: re.Pattern[str] = _LIST_SPLIT_RE) -> list[str]:
    """Coerce a string or list of strings into a clean list of items."""
    if value is None:
        return []
    if isinstance(value, str):
        if "<" in value:
            value = BeautifulSoup(html.unescape(value), "html.parser").get_text("\n")
        items = pattern.split(value)
    elif isinstance(value, (list, tuple)):
        items = [strip_html(str(v)) for v in value if v is not None]
    else:
        items = [str(value)]
    result = []
    for item in items:
        item = _collapse(item).strip("-*• ")
        if len(item) > min_length:
            result.append(item)
    return result


def parse_date(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Parse an ISO string, epoch (s or ms), datetime or Workday "Posted N Days Ago".

    Returns None for anything unparseable rather than raising.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.isdigit():
        return parse_date(int(text), now=now)

    posted = _WORKDAY_POSTED_RE.search(text)
    if posted:
        today = (now or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        if posted.group(1):
            return today
        if posted.group(2):
            return today - timedelta(days=1)
        return today - timedelta(days=int(posted.group(3)))

    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def resolve_url(base: str, href: str | None) -> str:
    if not href:
        return ""
    return urljoin(base, href.strip())


def normalize_url(url: str) -> str:
    """Comparable form of a posting URL: no tracking params, fragment, "www." or trailing slash."""
    url = url.strip()
    if not url:
        return ""
    parts = urlsplit(url)
    host = parts.netloc.lower().removeprefix("www.")
    query = urlencode([
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k.lower() not in _TRACKING_PARAMS
    ])
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), host, path, query, "")).lower()


def build_job(
    company: CompanyConfig,
    method: ScrapeMethod,
    *,
    title: str,
    location: str = "",
    description: str | None = "",
    requirements: Iterable[str] = (),
    responsibilities: Iterable[str] = (),
    skills: Iterable[str] = (),
    work_type_hint: str | None = None,
    employment_type_hint: str | None = None,
    experience_hint: str | None = None,
    remote_hint: bool | None = None,
    salary: SalaryInfo | None = None,
    external_url: str = "",
    posted_date: Any = None,
    department: str = "",
    team: str = "",
    ats: str | None = None,
    confidence: float | None = None,
    now: datetime | None = None,
) -> ScrapedJob:
    """Build a canonical ScrapedJob, filling every field the strategy did not find."""
    title = _collapse(strip_html(title or ""))
    if not title:
        msg = f"Empty job title from {method} for {company.id}"
        raise ParseError(msg)

    loc = parse_location(location or "", remote_hint=remote_hint)
    desc = clean_description(description)
    work_type = detect_work_type(
        hint=work_type_hint, location=loc.raw, title=title, description=desc,
    )
    if work_type == "remote" and not loc.is_remote:
        loc = loc.model_copy(update={"is_remote": True})

    requirement_list = [r for r in (_collapse(str(x)) for x in requirements) if r]
    if not requirement_list:
        requirement_list = extract_requirements(desc)

    timestamp = now or utcnow()
    return ScrapedJob(
        id=job_hash(company.id, title, loc.raw),
        title=title,
        normalized_title=normalize_title(title),
        company=company.name,
        company_id=company.id,
        location=loc,
        description=desc,
        requirements=requirement_list,
        responsibilities=[r for r in (_collapse(str(x)) for x in responsibilities) if r],
        skills=merge_skills(skills, f"{title} {desc}"),
        work_type=work_type,
        employment_type=detect_employment_type(
            hint=employment_type_hint, text=f"{title} {desc[:500]}",
        ),
        experience_level=detect_experience_level(title, desc, hint=experience_hint),
        salary=salary or SalaryInfo(),
        external_url=external_url or company.career_page_url,
        source=JobSource(
            type="ats" if method == "api" else "career_page",
            url=company.career_page_url,
            scrape_method=method,
            ats=ats,
        ),
        department=_collapse(department or ""),
        team=_collapse(team or ""),
        confidence=METHOD_CONFIDENCE[method] if confidence is None else max(0.0, min(1.0, confidence)),
        posted_date=parse_date(posted_date, now=timestamp),
        scraped_at=timestamp,
        updated_at=timestamp,
    )
