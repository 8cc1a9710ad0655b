"""Reservation intent extraction.

The assistant signals that a reservation should be made by appending a
sentinel marker such as ``[RESERVE]`` to its reply. When the marker is
present, the caller's own utterances are scanned with independent pattern
extractors. This is a best-effort heuristic: any field that cannot be found
keeps its default, and extraction never raises.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from app.core.config import settings
from app.services.reservations.models import ReservationAction

logger = logging.getLogger(__name__)

# Any bracketed action token, e.g. "[RESERVE]" or "[ACCIÓN:RESERVA]"
ACTION_MARKER_PATTERN = re.compile(r"\[[^\[\]\n]{1,40}\]")

LEGACY_RESERVATION_MARKER = "[ACCIÓN:RESERVA]"

NOTES_MAX_LENGTH = 100

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "uno": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5, "seis": 6,
    "siete": 7, "ocho": 8, "nueve": 9, "diez": 10, "once": 11, "doce": 12,
}
_NUMBER = r"(\d{1,2}|" + "|".join(NUMBER_WORDS) + r")"
_PEOPLE_NOUN = r"(?:people|persons?|guests?|diners?|adults|personas?|comensales?|gente)"
_MERIDIEM = r"(a\.?\s?m\.?|p\.?\s?m\.?)"

# Words that follow "I'm" or "soy" without being a name
_NOT_A_NAME = (
    r"(?:a|an|the|not|just|here|looking|calling|trying|going|interested|sorry|"
    r"fine|good|ready|vegetarian|vegan|un|una|el|la|de|yo)"
)

NAME_PATTERN = re.compile(
    r"\b(?:my name is|name is|under the name(?: of)?|it's under(?! the name)|"
    r"me llamo|mi nombre es|a nombre de|"
    rf"(?:i['’]m|i am|soy)(?!\s+{_NOT_A_NAME}\b))\s+([^\W\d_]+)",
    re.IGNORECASE,
)

PARTY_SIZE_PATTERNS = [
    re.compile(rf"\b{_NUMBER}\s*{_PEOPLE_NOUN}\b", re.IGNORECASE),
    re.compile(
        rf"\b(?:table|party|reservation|booking|mesa)\s+(?:for|of|para)\s+{_NUMBER}\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(?:we are|we're|there are|there will be|somos)\s+{_NUMBER}\b", re.IGNORECASE),
]

HALF_PAST_PATTERN = re.compile(
    rf"\bhalf past\s+{_NUMBER}(?:\s*{_MERIDIEM})?", re.IGNORECASE
)
MERIDIEM_PATTERN = re.compile(
    rf"\b(\d{{1,2}})(?:[:.](\d{{2}}))?\s*{_MERIDIEM}(?!\w)", re.IGNORECASE
)
OCLOCK_PATTERN = re.compile(rf"\b{_NUMBER}\s*o'?\s?clock\b", re.IGNORECASE)
AT_TIME_PATTERN = re.compile(
    rf"\b(?:at|around|a las?|para las?)\s*(\d{{1,2}})(?:[:.](\d{{2}}))?(\s*y media)?"
    rf"(?!\s*{_PEOPLE_NOUN})(?![\d/-])",
    re.IGNORECASE,
)

DATE_PATTERN = re.compile(
    r"\b(day after tomorrow|pasado mañana|tomorrow|mañana|today|tonight|hoy|"
    r"\d{1,2}[/-]\d{1,2})\b",
    re.IGNORECASE,
)

DATE_ALIASES = {
    "day after tomorrow": "day after tomorrow",
    "pasado mañana": "day after tomorrow",
    "tomorrow": "tomorrow",
    "mañana": "tomorrow",
    "today": "today",
    "tonight": "today",
    "hoy": "today",
}


def _to_number(token: str) -> Optional[int]:
    token = token.lower()
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS.get(token)


def _apply_meridiem(hour: int, meridiem: Optional[str]) -> int:
    if not meridiem:
        return hour
    is_pm = meridiem.lower().startswith("p")
    if is_pm and hour < 12:
        return hour + 12
    if not is_pm and hour == 12:
        return 0
    return hour


def _format_time(hour: int, minutes: int) -> Optional[str]:
    if 0 <= hour <= 23 and 0 <= minutes <= 59:
        return f"{hour:02d}:{minutes:02d}"
    return None


def extract_name(text: str) -> Optional[str]:
    match = NAME_PATTERN.search(text)
    if not match:
        return None
    name = match.group(1)
    return name[0].upper() + name[1:]


def extract_party_size(text: str) -> Optional[int]:
    for pattern in PARTY_SIZE_PATTERNS:
        match = pattern.search(text)
        if match:
            size = _to_number(match.group(1))
            if size and size > 0:
                return size
    return None


def extract_time(text: str) -> Optional[str]:
    match = MERIDIEM_PATTERN.search(text)
    if match:
        hour = _apply_meridiem(int(match.group(1)), match.group(3))
        return _format_time(hour, int(match.group(2) or 0))

    match = HALF_PAST_PATTERN.search(text)
    if match:
        hour = _to_number(match.group(1))
        if hour is not None:
            return _format_time(_apply_meridiem(hour, match.group(2)), 30)

    match = OCLOCK_PATTERN.search(text)
    if match:
        hour = _to_number(match.group(1))
        if hour is not None:
            return _format_time(hour, 0)

    match = AT_TIME_PATTERN.search(text)
    if match:
        minutes = 30 if match.group(3) else int(match.group(2) or 0)
        return _format_time(int(match.group(1)), minutes)
    return None


def extract_date(text: str) -> Optional[str]:
    match = DATE_PATTERN.search(text)
    if not match:
        return None
    value = match.group(1).lower()
    return DATE_ALIASES.get(value, value.replace("-", "/"))


class ActionExtractor(ABC):
    """Turns an assistant reply into a structured side-effecting action."""

    @abstractmethod
    def has_marker(self, reply_text: str) -> bool:
        pass

    @abstractmethod
    def extract(
        self, reply_text: str, prior_user_utterances: Sequence[str]
    ) -> Optional[ReservationAction]:
        pass


class RegexReservationExtractor(ActionExtractor):
    """Pattern-based reservation extractor."""

    def __init__(self, markers: Optional[Iterable[str]] = None):
        if markers is None:
            markers = [settings.reservation_marker, LEGACY_RESERVATION_MARKER]
        self.markers: List[str] = [m.lower() for m in markers if m]

    def has_marker(self, reply_text: str) -> bool:
        lowered = (reply_text or "").lower()
        return any(marker in lowered for marker in self.markers)

    def extract(
        self, reply_text: str, prior_user_utterances: Sequence[str]
    ) -> Optional[ReservationAction]:
        if not self.has_marker(reply_text):
            return None

        buffer = " ".join(u for u in prior_user_utterances if u)
        try:
            action = ReservationAction(
                notes=buffer[:NOTES_MAX_LENGTH],
            )
            name = extract_name(buffer)
            if name:
                action.name = name
            party_size = extract_party_size(buffer)
            if party_size:
                action.party_size = party_size
            time = extract_time(buffer)
            if time:
                action.time = time
            date = extract_date(buffer)
            if date:
                action.date = date
        except Exception as e:
            # Never let a heuristic failure abort the turn
            logger.error(
                f"[EXTRACTOR] Field extraction failed, using defaults: "
                f"{type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            action = ReservationAction(notes="Reservation by phone")

        logger.info(f"[EXTRACTOR] Reservation extracted: {action.model_dump()}")
        return action
