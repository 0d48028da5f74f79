"""Turn raw model text into a shape-coerced ``GeneratedSummary``.

The model is asked for bare JSON but routinely wraps it in markdown fences,
leaves trailing commas, or gets cut off at the token limit. Parsing is
therefore lenient: clean, parse, and on failure repair truncated JSON and
keep whatever sections survived. Missing sections always come back empty.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Dict, List, Optional

from core import AuthorityContact, CountrySummary, GeneratedSummary, PrimaryContact, Reference
from utils.exceptions import SummaryParseError


logger = logging.getLogger(__name__)

LIST_SECTIONS = (
    "status",
    "permit_and_conditions",
    "israel_limitation",
    "key_extracts",
    "ops_notes",
    "ops_checklist",
)

RECOVERY_LEAD_TIME = "2-4 weeks (verify with authority)"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_STRING_CONCAT_RE = re.compile(r'"\s*\+\s*"')
_DIGIT_RE = re.compile(r"\d")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def extract_json_block(text: str) -> str:
    """Strip markdown fences and cut to the outermost braces."""
    raw = str(text or "")
    match = _FENCE_RE.search(raw)
    if match:
        raw = match.group(1)
    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        raw = raw[start : end + 1]
    elif start != -1:
        raw = raw[start:]
    return raw


def clean_json_text(text: str) -> str:
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", text)
    cleaned = _CONTROL_CHARS_RE.sub(" ", cleaned)
    cleaned = _STRING_CONCAT_RE.sub("", cleaned)
    return cleaned.strip()


def repair_truncated_json(text: str) -> str:
    """Cut ``text`` back to its last complete value and close open containers."""
    stack: List[str] = []
    in_string = False
    escape_next = False
    safe_pos = 0
    safe_stack: List[str] = []

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            stack.append("}" if char == "{" else "]")
            safe_pos, safe_stack = i + 1, list(stack)
        elif char in "}]":
            if stack:
                stack.pop()
            safe_pos, safe_stack = i + 1, list(stack)
        elif char == ",":
            safe_pos, safe_stack = i, list(stack)

    if not stack and not in_string:
        return _TRAILING_COMMA_RE.sub(r"\1", text)

    repaired = text[:safe_pos].rstrip().rstrip(",")
    repaired += "".join(reversed(safe_stack))
    return _TRAILING_COMMA_RE.sub(r"\1", repaired)


def _text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value).strip()


def _ensure_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [text for text in (_text(item) for item in value) if text]


def _ensure_primary_contact(value: Any) -> PrimaryContact:
    if not isinstance(value, dict):
        return PrimaryContact()
    return PrimaryContact(
        phone=_text(value.get("phone")),
        email=_text(value.get("email")),
        website=_text(value.get("website")),
    )


def _ensure_contacts(value: Any) -> List[AuthorityContact]:
    if not isinstance(value, list):
        return []
    contacts = []
    for item in value:
        if not isinstance(item, dict):
            continue
        contact = AuthorityContact(
            name=_text(item.get("name")),
            role=_text(item.get("role")),
            phone=_text(item.get("phone")),
            email=_text(item.get("email")),
            url=_text(item.get("url")),
        )
        if contact.name or contact.email or contact.phone:
            contacts.append(contact)
    return contacts


def _ensure_references(value: Any) -> List[Reference]:
    if not isinstance(value, list):
        return []
    references = []
    for idx, item in enumerate(value, start=1):
        if not isinstance(item, dict):
            continue
        ref = Reference(
            id=_text(item.get("id")) or f"ref-{idx}",
            title=_text(item.get("title")),
            url=_text(item.get("url")),
            fetched_at=_text(item.get("fetchedAt") or item.get("fetched_at")) or _now_iso(),
        )
        if ref.title and ref.url:
            references.append(ref)
    return references


def coerce_summary(summary: Dict[str, Any]) -> CountrySummary:
    """Build a ``CountrySummary`` from loosely-shaped model output.

    ``additional_notes`` is never taken from model output.
    """
    return CountrySummary(
        minimum_lead_time=_text(summary.get("minimum_lead_time")),
        icao_doc_url=_text(summary.get("icao_doc_url")),
        state_rules_url=_text(summary.get("state_rules_url")),
        primary_contact=_ensure_primary_contact(summary.get("primary_contact")),
        authorities_contacts=_ensure_contacts(summary.get("authorities_contacts")),
        references=_ensure_references(summary.get("references")),
        **{name: _ensure_str_list(summary.get(name)) for name in LIST_SECTIONS},
    )


def _warn_on_quality(result: GeneratedSummary) -> None:
    summary = result.summary
    if not _DIGIT_RE.search(summary.minimum_lead_time):
        logger.warning(f"{result.iso3}: minimum_lead_time has no numeric value")
    if not summary.status:
        logger.warning(f"{result.iso3}: no status information found")
    if not summary.authorities_contacts:
        logger.warning(f"{result.iso3}: no authority contacts found")


def _recover_partial(parsed: Dict[str, Any]) -> GeneratedSummary:
    summary = parsed.get("summary")
    summary = summary if isinstance(summary, dict) else {}
    coerced = coerce_summary(summary)
    # Contacts and references are the most likely to be cut mid-object, so they are dropped
    coerced.authorities_contacts = []
    coerced.references = []
    if not coerced.minimum_lead_time:
        coerced.minimum_lead_time = RECOVERY_LEAD_TIME
    return GeneratedSummary(
        country=_text(parsed.get("country")) or "Unknown",
        iso3=(_text(parsed.get("iso3")) or "UNK").upper(),
        last_updated=_now_iso(),
        summary=coerced,
    )


def parse_summary_response(text: str) -> GeneratedSummary:
    """Parse model text into a ``GeneratedSummary``.

    Raises:
        SummaryParseError: when neither the text nor its repaired form is JSON
    """
    if not str(text or "").strip():
        raise SummaryParseError("Empty response from LLM")

    json_str = clean_json_text(extract_json_block(text))

    try:
        parsed = json.loads(json_str)
        if not isinstance(parsed, dict) or not parsed.get("country") or not parsed.get("iso3"):
            raise SummaryParseError("Missing required fields in LLM response")
        if not isinstance(parsed.get("summary"), dict):
            raise SummaryParseError("Missing required fields in LLM response")
    except (json.JSONDecodeError, SummaryParseError) as first_error:
        logger.warning(f"Initial parse failed ({first_error}), attempting recovery")
        try:
            recovered = json.loads(repair_truncated_json(json_str))
        except json.JSONDecodeError as e:
            logger.error(f"JSON recovery failed; response preview: {str(text)[:500]}")
            raise SummaryParseError("Invalid JSON response from LLM - parsing failed completely") from e
        if not isinstance(recovered, dict):
            raise SummaryParseError("Invalid JSON response from LLM - not an object") from first_error
        logger.info("JSON recovered with partial data")
        return _recover_partial(recovered)

    result = GeneratedSummary(
        country=_text(parsed.get("country")),
        iso3=_text(parsed.get("iso3")).upper(),
        last_updated=_text(parsed.get("lastUpdated")) or _now_iso(),
        summary=coerce_summary(parsed["summary"]),
    )
    _warn_on_quality(result)
    return result


def summary_stats(summary: Optional[CountrySummary]) -> Dict[str, Any]:
    """Compact numbers for log lines."""
    if summary is None:
        return {}
    return {
        "lead_time": summary.minimum_lead_time or "(missing)",
        "contact": summary.primary_contact.email or summary.primary_contact.phone or "(missing)",
        "references": len(summary.references),
        "contacts": len(summary.authorities_contacts),
    }
