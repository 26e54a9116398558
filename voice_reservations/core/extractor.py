"""
Heuristic reservation field extraction.

Pulls a client name, date and time out of free Czech text. Each field is
driven by an ordered list of rules; the first rule producing a value wins
and no further rules are tried for that field. Within a rule the latest
occurrence in the text wins, so a later correction replaces an earlier
value.

Rule order:
1. Name - "Jméno:", "pro <name>", "klient(a):"
2. Date - labeled ISO, bare ISO, DD.MM.(YYYY), DD. <month genitive>
3. Time - HH:MM, HH.MM or "<hour> hodin", optionally after "Čas:", "v", "ve"
"""

import re
from dataclasses import dataclass
from datetime import date as Date
from typing import Callable, Match, Optional, Pattern, Sequence

from .models import PartialReservation

# Unicode letters only, covers Czech diacritics
_WORD = r"[^\W\d_]+"
_NAME = rf"({_WORD}\s+{_WORD})"

CZECH_MONTHS = {
    "ledna": "01",
    "února": "02",
    "března": "03",
    "dubna": "04",
    "května": "05",
    "června": "06",
    "července": "07",
    "srpna": "08",
    "září": "09",
    "října": "10",
    "listopadu": "11",
    "prosince": "12",
}

Handler = Callable[[Match, Date], Optional[str]]


@dataclass(frozen=True)
class ExtractionRule:
    """A pattern and the handler turning its match into a field value."""
    name: str
    pattern: Pattern
    handler: Handler

    def apply(self, text: str, today: Date) -> Optional[str]:
        """Return the value of the last match the handler accepts."""
        for match in reversed(list(self.pattern.finditer(text))):
            value = self.handler(match, today)
            if value:
                return value
        return None


def _format_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return Date(year, month, day).isoformat()
    except ValueError:
        return None


def _captured_name(match: Match, today: Date) -> Optional[str]:
    return " ".join(match.group(1).split())


def _iso_date(match: Match, today: Date) -> Optional[str]:
    year, month, day = (int(part) for part in match.group(1).split("-"))
    return _format_date(year, month, day)


def _numeric_date(match: Match, today: Date) -> Optional[str]:
    year = int(match.group(3)) if match.group(3) else today.year
    return _format_date(year, int(match.group(2)), int(match.group(1)))


def _month_name_date(match: Match, today: Date) -> Optional[str]:
    month = CZECH_MONTHS[match.group(2).lower()]
    return _format_date(today.year, int(month), int(match.group(1)))


def _clock_time(match: Match, today: Date) -> Optional[str]:
    hours = int(match.group(1))
    minutes = match.group(2) or match.group(3)
    minutes = int(minutes) if minutes else 0
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


NAME_RULES: Sequence[ExtractionRule] = (
    ExtractionRule(
        "labeled_name",
        re.compile(rf"Jméno:\s*{_NAME}", re.IGNORECASE),
        _captured_name,
    ),
    ExtractionRule(
        "for_name",
        re.compile(rf"\bpro\s+{_NAME}", re.IGNORECASE),
        _captured_name,
    ),
    ExtractionRule(
        "client_name",
        re.compile(rf"\bklienta?:\s*{_NAME}", re.IGNORECASE),
        _captured_name,
    ),
)

DATE_RULES: Sequence[ExtractionRule] = (
    ExtractionRule(
        "labeled_iso_date",
        re.compile(r"Datum:\s*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
        _iso_date,
    ),
    ExtractionRule(
        "iso_date",
        re.compile(r"(?<!\d)(\d{4}-\d{2}-\d{2})(?!\d)"),
        _iso_date,
    ),
    ExtractionRule(
        "numeric_date",
        re.compile(r"(?<![\d.])(\d{1,2})\.\s*(\d{1,2})\.\s*(\d{4})?"),
        _numeric_date,
    ),
    ExtractionRule(
        "month_name_date",
        re.compile(
            r"(?<![\d.])(\d{1,2})\.\s*(" + "|".join(CZECH_MONTHS) + r")(?!\w)",
            re.IGNORECASE,
        ),
        _month_name_date,
    ),
)

TIME_RULES: Sequence[ExtractionRule] = (
    ExtractionRule(
        "clock_time",
        re.compile(
            r"(?:(?:Čas:|\bve?\b)\s*)?"
            r"(?<![\d.])(\d{1,2})"
            r"(?::(\d{2})(?!\.?\d)|\.(\d{2})(?![.\d])|\s*hodin)",
            re.IGNORECASE,
        ),
        _clock_time,
    ),
)


def first_match(rules: Sequence[ExtractionRule], text: str, today: Date) -> Optional[str]:
    """Evaluate rules in order and return the value of the first rule that matches."""
    for rule in rules:
        value = rule.apply(text, today)
        if value:
            return value
    return None


def extract_fields(
    existing: PartialReservation,
    new_text: str,
    today: Optional[Date] = None,
) -> PartialReservation:
    """Extract reservation fields from text on top of existing data.

    Fields found in new_text overwrite older values; fields not found
    keep whatever existing already holds. Nothing is ever cleared.

    Args:
        existing: Reservation data gathered so far
        new_text: Text to scan
        today: Date supplying the year when the text omits it

    Returns:
        Updated PartialReservation
    """
    if not new_text:
        return existing
    today = today or Date.today()
    return existing.merge(
        client_name=first_match(NAME_RULES, new_text, today),
        date=first_match(DATE_RULES, new_text, today),
        time=first_match(TIME_RULES, new_text, today),
    )


def is_complete(reservation: PartialReservation) -> bool:
    """A reservation is complete once it has both a client name and a date."""
    return bool(reservation.client_name and reservation.date)
