"""OCR and field extraction for tenant verification documents.

Text recognition runs through Tesseract (pytesseract + Pillow). The
extraction functions below work on plain text so they can be exercised
without an OCR engine.
"""

import asyncio
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import pytesseract
from PIL import Image, ImageOps

from propertyflow.core.config import get_settings

logger = logging.getLogger(__name__)

US_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC",
})

# Two-letter tokens that are usually field labels on an ID, not states
_LABEL_CODES = frozenset({"ID", "IN", "OR", "ME", "DE"})
_ID_HEADER_WORDS = ("LICENSE", "DRIVER", "IDENTIFICATION", "PASSPORT", "STATE OF", "DEPARTMENT", "USA")

_DATE = r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"
_AMOUNT = r"\$?\s*([\d,]+\.?\d*)"

_NAME_PATTERNS = [
    re.compile(r"NAME[:\s]+([A-Z][A-Z\s]+)$"),
    re.compile(r"^([A-Z]+,\s*[A-Z\s]+)$"),
    re.compile(r"^([A-Z][A-Z\s]{2,})$"),
]
_DOB_PATTERNS = [
    re.compile(rf"DOB[:\s]+({_DATE})", re.IGNORECASE),
    re.compile(rf"BIRTH(?:\s*DATE)?[:\s]+({_DATE})", re.IGNORECASE),
]
_ID_NUMBER_PATTERNS = [
    re.compile(r"\b(?:DL|ID|LIC)\s*(?:NO\.?|#)?[#:\s]+([A-Z0-9]{5,})", re.IGNORECASE),
    re.compile(r"\b(?:NUMBER|NO)[.:\s]+([A-Z0-9]{5,})", re.IGNORECASE),
]
_EXPIRATION_PATTERNS = [
    re.compile(rf"\bEXPIRES[:\s]+({_DATE})", re.IGNORECASE),
    re.compile(rf"\bEXP[:\s]+({_DATE})", re.IGNORECASE),
]
_DATE_RANGE = re.compile(rf"({_DATE})\s*(?:-|to|TO|through)\s*({_DATE})")
_GROSS_PATTERNS = [
    re.compile(rf"TOTAL\s+GROSS[:\s]+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"(?<!YTD )GROSS(?:\s+PAY)?[:\s]+{_AMOUNT}", re.IGNORECASE),
]
_NET_PATTERNS = [
    re.compile(rf"NET\s+PAY[:\s]+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"TAKE\s+HOME[:\s]+{_AMOUNT}", re.IGNORECASE),
]
_YTD_PATTERNS = [
    re.compile(rf"YTD\s+GROSS[:\s]+{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"YEAR\s+TO\s+DATE[:\s]+{_AMOUNT}", re.IGNORECASE),
]
_DEPOSIT_LINE = re.compile(rf"({_DATE})\s+.*?\s+\$?([\d,]+\.\d{{2}})")
_HOLDER_PATTERNS = [
    re.compile(r"ACCOUNT\s+HOLDER[:\s]+([A-Z][A-Z\s]+)$", re.IGNORECASE),
    re.compile(r"NAME[:\s]+([A-Z][A-Z\s]+)$", re.IGNORECASE),
]
_EMPLOYEE_PATTERNS = [
    re.compile(r"EMPLOYEE(?:\s+NAME)?[:\s]+([A-Za-z][A-Za-z\s.'-]+)$", re.IGNORECASE),
    re.compile(r"\bNAME[:\s]+([A-Za-z][A-Za-z\s.'-]+)$", re.IGNORECASE),
]


class OCRError(Exception):
    """Raised when the OCR engine cannot read a document."""


@dataclass
class OCRResult:
    text: str
    confidence: int
    extracted: dict[str, Any] = field(default_factory=dict)


def normalize_date(value: str) -> Optional[str]:
    """M/D/Y (or M-D-Y) to ISO YYYY-MM-DD. Two-digit years above 50 are 19xx."""
    match = re.fullmatch(r"\s*(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})\s*", value)
    if not match:
        return None
    month, day, year = (int(part) for part in match.groups())
    if len(match.group(3)) == 2:
        year += 1900 if year > 50 else 2000
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_amount(value: str) -> Optional[float]:
    try:
        return float(value.replace(",", "").replace("$", "").strip())
    except ValueError:
        return None


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _first_match(patterns: list[re.Pattern], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _first_line_match(patterns: list[re.Pattern], lines: list[str]) -> Optional[str]:
    for line in lines:
        value = _first_match(patterns, line)
        if value:
            return value
    return None


def extract_id_fields(text: str) -> dict[str, Any]:
    """Fields of a driver's license, state ID or passport."""
    lines = _lines(text)
    upper_lines = [line.upper() for line in lines]
    data: dict[str, Any] = {}

    for line in lines[:5]:
        if any(word in line.upper() for word in _ID_HEADER_WORDS):
            continue
        name = _first_match(_NAME_PATTERNS, line)
        if name and len(name) > 3:
            data["full_name"] = " ".join(name.split())
            break

    dob = _first_match(_DOB_PATTERNS, text)
    if dob is None:
        # Fall back to a bare full date on a line that is not the expiry
        for line in upper_lines:
            if "EXP" in line or "ISS" in line:
                continue
            match = re.search(r"\b(\d{1,2}[-/]\d{1,2}[-/]\d{4})\b", line)
            if match:
                dob = match.group(1)
                break
    if dob:
        data["date_of_birth"] = normalize_date(dob)

    id_number = _first_match(_ID_NUMBER_PATTERNS, text)
    if id_number:
        data["id_number"] = id_number.upper()

    expiration = _first_match(_EXPIRATION_PATTERNS, text)
    if expiration:
        data["expiration_date"] = normalize_date(expiration)

    state = _issuing_state(upper_lines[:10])
    if state:
        data["issuing_state"] = state

    return data


def _issuing_state(lines: list[str]) -> Optional[str]:
    # An address line ("SACRAMENTO, CA 95814") is the most reliable signal
    for line in lines:
        match = re.search(r"\b([A-Z]{2})\s+\d{5}\b", line)
        if match and match.group(1) in US_STATE_CODES:
            return match.group(1)
    for line in lines:
        for code in re.findall(r"\b([A-Z]{2})\b", line):
            if code in US_STATE_CODES and code not in _LABEL_CODES:
                return code
    return None


def extract_pay_stub_fields(text: str) -> dict[str, Any]:
    """Employer, pay period and amounts from a pay stub."""
    lines = _lines(text)
    data: dict[str, Any] = {}

    for line in lines[:5]:
        if len(line) > 3 and not re.search(_DATE, line):
            data["employer_name"] = line
            break

    employee = _first_line_match(_EMPLOYEE_PATTERNS, lines)
    if employee:
        data["employee_name"] = " ".join(employee.split())

    period = _DATE_RANGE.search(text)
    if period:
        data["pay_period_start"] = normalize_date(period.group(1))
        data["pay_period_end"] = normalize_date(period.group(2))

    gross = _first_match(_GROSS_PATTERNS, text)
    if gross:
        data["gross_pay"] = parse_amount(gross)

    net = _first_match(_NET_PATTERNS, text)
    if net:
        data["net_pay"] = parse_amount(net)

    ytd = _first_match(_YTD_PATTERNS, text)
    if ytd:
        data["ytd_gross"] = parse_amount(ytd)

    return data


def extract_bank_statement_fields(text: str) -> dict[str, Any]:
    """Account holder, statement period and summed deposits."""
    lines = _lines(text)
    data: dict[str, Any] = {}

    holder = _first_line_match(_HOLDER_PATTERNS, lines[:10])
    if holder:
        data["account_holder"] = " ".join(holder.split())

    for line in lines[:15]:
        period = _DATE_RANGE.search(line)
        if period:
            data["statement_period_start"] = normalize_date(period.group(1))
            data["statement_period_end"] = normalize_date(period.group(2))
            break

    deposits = []
    for line in lines:
        if "deposit" not in line.lower():
            continue
        match = _DEPOSIT_LINE.search(line)
        if not match:
            continue
        amount = parse_amount(match.group(2))
        if amount is not None:
            deposits.append({"date": normalize_date(match.group(1)), "amount": amount})

    if deposits:
        data["deposits"] = deposits
        data["total_deposits"] = round(sum(d["amount"] for d in deposits), 2)

    return data


def extract_fields(doc_type: str, text: str) -> dict[str, Any]:
    """Dispatch on document type. Unknown types yield no fields."""
    if doc_type in ("drivers_license", "state_id", "passport"):
        return extract_id_fields(text)
    if doc_type == "pay_stub":
        return extract_pay_stub_fields(text)
    if doc_type == "bank_statement":
        return extract_bank_statement_fields(text)
    return {}


def _average_confidence(data: dict[str, list]) -> int:
    scores = []
    for raw, word in zip(data.get("conf", []), data.get("text", [])):
        try:
            score = float(raw)
        except (TypeError, ValueError):
            continue
        if score >= 0 and str(word).strip():
            scores.append(score)
    if not scores:
        return 0
    return int(round(sum(scores) / len(scores)))


class OCRService:
    """Tesseract-backed text recognition for uploaded images."""

    def __init__(self, tesseract_cmd: Optional[str] = None, lang: str = "eng"):
        tesseract_cmd = tesseract_cmd or get_settings().tesseract_cmd
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang

    def _recognize(self, content: bytes) -> tuple[str, int]:
        try:
            image = Image.open(io.BytesIO(content))
            image = ImageOps.exif_transpose(image)
            if image.mode != "L":
                image = image.convert("L")
            text = pytesseract.image_to_string(image, lang=self.lang)
            data = pytesseract.image_to_data(
                image, lang=self.lang, output_type=pytesseract.Output.DICT
            )
        except (OSError, pytesseract.TesseractError) as e:
            raise OCRError(str(e)) from e
        return text, _average_confidence(data)

    async def process(self, content: bytes, doc_type: str) -> OCRResult:
        """Recognize text in an image and extract the fields for its type."""
        text, confidence = await asyncio.to_thread(self._recognize, content)
        logger.info("[OCR] Recognized %s characters at %s%% confidence", len(text), confidence)
        return OCRResult(
            text=text,
            confidence=confidence,
            extracted=extract_fields(doc_type, text),
        )
