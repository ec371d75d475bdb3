"""
Date and time recognition shared by the task, meeting and journal engines.

Relative expressions ("tomorrow", "next week", "by Friday") are resolved
against a caller-supplied reference datetime, normally the TextInput
timestamp, so the same input always yields the same dates.

Absolute written dates are parsed with python-dateutil; the reference
supplies any missing year.
"""

import re
from datetime import date, datetime, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta, MO, TU, WE, TH, FR, SA, SU

from notesmith.extraction.base import ExtractionPolicy, PatternRule
from notesmith.models import EntityHit

MONTH_NAMES = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
WEEKDAY_NAMES = r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"

_WEEKDAYS = {
    'monday': MO, 'tuesday': TU, 'wednesday': WE, 'thursday': TH,
    'friday': FR, 'saturday': SA, 'sunday': SU,
}

# Due-date patterns in priority order: first rule that matches wins.
ISO_DATE_RE = re.compile(r"\b(\d{4}[-/]\d{1,2}[-/]\d{1,2})\b")
US_DATE_RE = re.compile(r"\b(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\b")
WRITTEN_DATE_RE = re.compile(
    rf"\b({MONTH_NAMES}\.? \d{{1,2}}(?:st|nd|rd|th)?(?:,? \d{{4}})?)\b", re.IGNORECASE)
DAY_MONTH_RE = re.compile(
    rf"\b(\d{{1,2}}(?:st|nd|rd|th)? {MONTH_NAMES}(?:,? \d{{4}})?)\b", re.IGNORECASE)
RELATIVE_DATE_RE = re.compile(
    r"\b(today|tonight|tomorrow|yesterday|this week|next week|this month|next month|"
    r"end of (?:the )?(?:day|week|month))\b", re.IGNORECASE)
DUE_WEEKDAY_RE = re.compile(
    rf"\b(?:due|by|before|until|on)\s+((?:next |this )?{WEEKDAY_NAMES})\b", re.IGNORECASE)
IN_N_DAYS_RE = re.compile(r"\bin (\d{1,3}) (day|days|week|weeks)\b", re.IGNORECASE)

TIME_RE = re.compile(r"\b(\d{1,2}:\d{2}(?:\s*(?:am|pm|AM|PM))?)\b")
TIME_AMPM_RE = re.compile(r"\b(\d{1,2}\s*(?:am|pm|AM|PM))\b")

DUE_DATE_PATTERNS = (
    ISO_DATE_RE,
    US_DATE_RE,
    WRITTEN_DATE_RE,
    DAY_MONTH_RE,
    RELATIVE_DATE_RE,
    DUE_WEEKDAY_RE,
    IN_N_DAYS_RE,
)


def _as_datetime(reference: datetime | date | None) -> datetime:
    if reference is None:
        return datetime(1970, 1, 1)
    if isinstance(reference, datetime):
        return reference.replace(tzinfo=None)
    return datetime(reference.year, reference.month, reference.day)


def resolve_relative(phrase: str, reference: datetime | date) -> date | None:
    """
    Resolve a relative phrase against the reference date.

    Args:
        phrase: e.g. "tomorrow", "next week", "friday", "next friday".
        reference: Anchor date (the input timestamp).

    Returns:
        The resolved date, or None if the phrase is not understood.
    """
    ref = _as_datetime(reference).date()
    text = phrase.strip().lower()

    if text in ('today', 'tonight', 'end of day', 'end of the day'):
        return ref
    if text == 'tomorrow':
        return ref + timedelta(days=1)
    if text == 'yesterday':
        return ref - timedelta(days=1)
    if text in ('this week', 'end of week', 'end of the week'):
        # Upcoming Sunday (today if it is Sunday)
        return ref + relativedelta(weekday=SU(+1))
    if text == 'next week':
        return ref + timedelta(days=7)
    if text in ('this month', 'end of month', 'end of the month'):
        return ref + relativedelta(day=31)
    if text == 'next month':
        return ref + relativedelta(months=1)

    in_days = IN_N_DAYS_RE.fullmatch(f"in {text[3:]}") if text.startswith('in ') else None
    if in_days:
        amount = int(in_days.group(1))
        unit_days = 7 if in_days.group(2).startswith('week') else 1
        return ref + timedelta(days=amount * unit_days)

    modifier, _, day_name = text.rpartition(' ')
    weekday = _WEEKDAYS.get(day_name)
    if weekday is None:
        return None
    # "friday" means the next Friday strictly after today
    upcoming = ref + relativedelta(days=1, weekday=weekday(+1))
    if modifier == 'next' and (upcoming - ref).days < 7:
        # "next friday" skips the one in the current week when it is close
        upcoming_this_week = ref + relativedelta(weekday=SU(+1))
        if upcoming <= upcoming_this_week:
            upcoming += timedelta(days=7)
    return upcoming


def parse_date_text(text: str, reference: datetime | date | None = None) -> date | None:
    """
    Parse an absolute or relative date expression.

    Numeric dates are read month-first (US order) unless the year leads.
    Missing years come from the reference date.

    Returns:
        A date, or None when the text cannot be parsed.
    """
    if not text:
        return None
    candidate = text.strip()
    relative = resolve_relative(candidate, reference) if reference is not None else None
    if relative is not None:
        return relative
    if RELATIVE_DATE_RE.fullmatch(candidate) or re.fullmatch(
            rf"(?:next |this )?{WEEKDAY_NAMES}", candidate, re.IGNORECASE):
        return None  # Relative phrase without a reference point

    default = _as_datetime(reference).replace(hour=0, minute=0, second=0, microsecond=0)
    cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", candidate, flags=re.IGNORECASE)
    try:
        return date_parser.parse(cleaned, default=default, dayfirst=False, fuzzy=False).date()
    except (ValueError, OverflowError):
        return None


def find_due_date(text: str, reference: datetime | date | None = None) -> tuple[str, date | None] | None:
    """
    Find the first due-date expression in text.

    Patterns are tried in DUE_DATE_PATTERNS order; the first pattern with a
    match wins, even if the date itself fails to parse.

    Returns:
        (matched_text, parsed_date_or_None), or None when nothing matches.
    """
    for pattern in DUE_DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        if pattern is IN_N_DAYS_RE:
            phrase = match.group(0)
        else:
            phrase = match.group(1)
        return match.group(0), parse_date_text(phrase, reference)
    return None


DANGLING_DUE_KEYWORD_RE = re.compile(r"\s*\b(?:due(?:\s+(?:on|by))?|by|before|on)\s*$", re.IGNORECASE)


def strip_due_date(text: str) -> str:
    """
    Remove every due-date expression from text and tidy leftover punctuation.

    A "due" or "by" left dangling once its date is gone goes with it, so
    "pay rent due 2024-03-01" becomes "pay rent".
    """
    result = text
    for pattern in DUE_DATE_PATTERNS:
        result = pattern.sub('', result)
    result = re.sub(r"\s{2,}", ' ', result)
    result = re.sub(r"\s+[,;]\s*", ' ', result)
    result = re.sub(r"\(\s*\)|\[\s*\]", '', result)
    result = re.sub(r"\s*[-,:;]\s*$", '', result)
    if result.strip() != text.strip():
        result = DANGLING_DUE_KEYWORD_RE.sub('', result)
        result = re.sub(r"\s*[-,:;]\s*$", '', result)
    return result.strip()


def format_display_date(value: date, reference: datetime | date | None = None) -> str:
    """
    Human-readable date relative to the reference: "Today", "Tomorrow",
    "Mar 5", or "Mar 5, 2025" when the year differs.
    """
    if reference is not None:
        ref = _as_datetime(reference).date()
        if value == ref:
            return "Today"
        if value == ref + timedelta(days=1):
            return "Tomorrow"
        if value.year == ref.year:
            return f"{value.strftime('%b')} {value.day}"
    return f"{value.strftime('%b')} {value.day}, {value.year}"


# =============================================================================
# Date/time entity policies
# =============================================================================

def _date_hit(kind: str, reference: datetime | date | None):
    def build(match: re.Match) -> EntityHit:
        parsed = parse_date_text(match.group(1), reference)
        return EntityHit(
            text=match.group(0),
            value=parsed.isoformat() if parsed else None,
            start=match.start(),
            end=match.end(),
            confidence=0.9 if parsed else 0.5,
            kind=kind,
        )
    return build


def date_policy(reference: datetime | date | None = None) -> ExtractionPolicy[EntityHit]:
    """Absolute date mentions: ISO, numeric, written month (both orders)."""
    return ExtractionPolicy("dates", [
        PatternRule("iso-date", ISO_DATE_RE, _date_hit("iso-date", reference)),
        PatternRule("numeric-date", US_DATE_RE, _date_hit("numeric-date", reference)),
        PatternRule("written-date", WRITTEN_DATE_RE, _date_hit("written-date", reference)),
        PatternRule("day-month-date", DAY_MONTH_RE, _date_hit("day-month-date", reference)),
    ])


def _normalize_time(raw: str) -> str | None:
    compact = raw.strip().lower().replace(' ', '')
    for fmt in ('%I:%M%p', '%H:%M', '%I%p'):
        try:
            return datetime.strptime(compact, fmt).strftime('%H:%M')
        except ValueError:
            continue
    return None


def _time_hit(match: re.Match) -> EntityHit:
    normalized = _normalize_time(match.group(1))
    return EntityHit(
        text=match.group(0),
        value=normalized,
        start=match.start(),
        end=match.end(),
        confidence=0.9 if normalized else 0.4,
        kind="time",
    )


TIME_POLICY: ExtractionPolicy[EntityHit] = ExtractionPolicy("times", [
    PatternRule("clock-time", TIME_RE, _time_hit),
    PatternRule("hour-ampm", TIME_AMPM_RE, _time_hit),
])
