"""Validation and clean-up of operator-edited country summaries.

Operators submit the whole summary, ``additional_notes`` included. Input is
checked first and every problem is reported at once; accepted input is then
trimmed through the same coercion model output goes through.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List
from urllib.parse import urlparse

from core import CountrySummary
from utils.exceptions import SummaryValidationError

from .response_parser import LIST_SECTIONS, coerce_summary, _ensure_str_list


MAX_LEAD_TIME_CHARS = 200
MAX_LIST_ITEMS = 50
MAX_ITEM_CHARS = 1000
MAX_CONTACTS = 20

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\d\s+\-().]+$")

NOTE_SECTIONS = LIST_SECTIONS + ("additional_notes",)


def _is_url(value: Any) -> bool:
    text = str(value or "").strip()
    if not text:
        return True
    parsed = urlparse(text)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _is_email(value: Any) -> bool:
    text = str(value or "").strip()
    return not text or bool(_EMAIL_RE.match(text))


def _is_phone(value: Any) -> bool:
    text = str(value or "").strip()
    if not text:
        return True
    return bool(_PHONE_RE.match(text)) and len(re.sub(r"\D", "", text)) >= 6


def _check_contacts(value: Any, errors: List[str]) -> None:
    if not isinstance(value, list):
        errors.append("authorities_contacts must be an array")
        return
    if len(value) > MAX_CONTACTS:
        errors.append(f"authorities_contacts must have {MAX_CONTACTS} items or less")
    for idx, item in enumerate(value):
        if not isinstance(item, dict):
            errors.append(f"authorities_contacts[{idx}] must be an object")
            continue
        if not isinstance(item.get("name"), str) or not item["name"].strip():
            errors.append(f"authorities_contacts[{idx}].name is required")
        if not _is_email(item.get("email")):
            errors.append(f"authorities_contacts[{idx}].email must be valid")
        if not _is_url(item.get("url")):
            errors.append(f"authorities_contacts[{idx}].url must be valid")


def _check_references(value: Any, errors: List[str]) -> None:
    if not isinstance(value, list):
        errors.append("references must be an array")
        return
    if len(value) > MAX_LIST_ITEMS:
        errors.append(f"references must have {MAX_LIST_ITEMS} items or less")
    for idx, item in enumerate(value):
        if not isinstance(item, dict):
            errors.append(f"references[{idx}] must be an object")
            continue
        for name in ("id", "title"):
            if not isinstance(item.get(name), str) or not item[name].strip():
                errors.append(f"references[{idx}].{name} is required")
        if not str(item.get("url") or "").strip() or not _is_url(item.get("url")):
            errors.append(f"references[{idx}].url must be a valid URL")


def validate_summary_edit(summary: Any) -> List[str]:
    """Every problem with an edited summary; empty when it is acceptable."""
    if not isinstance(summary, dict):
        return ["Summary must be an object"]

    errors: List[str] = []
    lead_time = summary.get("minimum_lead_time")
    if isinstance(lead_time, str) and len(lead_time) > MAX_LEAD_TIME_CHARS:
        errors.append(f"minimum_lead_time must be {MAX_LEAD_TIME_CHARS} characters or less")

    for name in ("icao_doc_url", "state_rules_url"):
        if not _is_url(summary.get(name)):
            errors.append(f"{name} must be a valid URL (http:// or https://)")

    contact = summary.get("primary_contact")
    if isinstance(contact, dict):
        if not _is_email(contact.get("email")):
            errors.append("primary_contact.email must be a valid email address")
        if not _is_phone(contact.get("phone")):
            errors.append("primary_contact.phone must be a valid phone number")
        if not _is_url(contact.get("website")):
            errors.append("primary_contact.website must be a valid URL")

    for name in NOTE_SECTIONS:
        items = summary.get(name)
        if not items:
            continue
        if not isinstance(items, list):
            errors.append(f"{name} must be an array")
            continue
        if len(items) > MAX_LIST_ITEMS:
            errors.append(f"{name} must have {MAX_LIST_ITEMS} items or less")
        for idx, item in enumerate(items):
            if not isinstance(item, str):
                errors.append(f"{name}[{idx}] must be a string")
            elif len(item) > MAX_ITEM_CHARS:
                errors.append(f"{name}[{idx}] must be {MAX_ITEM_CHARS} characters or less")

    if summary.get("authorities_contacts"):
        _check_contacts(summary["authorities_contacts"], errors)
    if summary.get("references"):
        _check_references(summary["references"], errors)
    return errors


def sanitize_summary_edit(summary: Dict[str, Any]) -> CountrySummary:
    """Validate and trim an edited summary.

    Raises:
        SummaryValidationError: listing every problem found
    """
    errors = validate_summary_edit(summary)
    if errors:
        raise SummaryValidationError("Validation failed", errors=errors)
    cleaned = coerce_summary(summary)
    cleaned.additional_notes = _ensure_str_list(summary.get("additional_notes"))
    return cleaned
