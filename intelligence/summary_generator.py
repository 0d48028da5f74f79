"""
Summary Generator
Grounded model call that produces one country's regulatory brief
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging

from core import AiRequest, AiRequestStatus, GeneratedSummary, Source

from .llm.base import BaseLLM, GroundingInfo, Message
from .response_parser import parse_summary_response, summary_stats


logger = logging.getLogger(__name__)


PROMPT_AUDIT_LIMIT = 10000
SOURCE_EXCERPT_LIMIT = 4000


GROUNDING_PROMPT = """You are compiling operational intelligence for aviation cargo operators. Produce a factual regulatory brief on the carriage, transit, import, export and overflight of munitions of war (weapons, ammunition, explosives, military material) by air.

RESEARCH PROTOCOL:
Search official sources in this order:
1. The country's AIP (Aeronautical Information Publication), especially GEN 1.2, 1.4 and 1.6
2. Civil Aviation Authority website and contact directories
3. National dangerous goods transport regulations
4. ICAO compliance documentation
5. EUROCONTROL AIS Online for European countries

Look for permit requirements, lead times, contact details, specific restrictions and Israel-related policies.

WRITING REQUIREMENTS:
- Direct operational language for flight operations personnel
- Specific facts: regulation numbers, timeframes, fees, contact details
- State requirements definitively; no hedging and no boilerplate disclaimers
- Complete actionable statements, not fragments

OUTPUT FORMAT (return ONLY valid JSON, no markdown):
{
  "country": "<COUNTRY_NAME>",
  "iso3": "<ISO3_CODE>",
  "lastUpdated": "<current ISO timestamp>",
  "summary": {
    "minimum_lead_time": "<numeric timeframe such as '5-7 working days', max 10 words>",
    "icao_doc_url": "<URL to ICAO Doc 9284 or the relevant compliance page>",
    "state_rules_url": "<URL to the AIP GEN section or national regulations>",
    "primary_contact": {"phone": "<with country code>", "email": "<permit office email>", "website": "<authority website>"},
    "status": ["-> Prior authorization required from [authority]. Submit to [department/email]"],
    "permit_and_conditions": ["-> Application requirements: [documents]. Submit to [email/portal] with [lead time]"],
    "israel_limitation": ["-> [Policy on Israel-origin/destination cargo, or 'No specific restrictions identified']"],
    "key_extracts": ["-> [Law/Regulation, Article]: [plain language requirement]"],
    "ops_notes": ["-> Required documents: [list]. Originals required at [checkpoint]"],
    "ops_checklist": ["[_] Permit application submitted [timeframe] before flight - receipt confirmed"],
    "authorities_contacts": [
      {"name": "<department>", "role": "<function>", "phone": "<direct line>", "email": "<functional email>", "url": "<department page>"}
    ],
    "references": [
      {"id": "ref-1", "title": "<exact regulation/AIP section title>", "url": "<direct URL>", "fetchedAt": "<current timestamp>"}
    ]
  }
}

VALIDATION RULES:
1. minimum_lead_time MUST contain numbers (days/weeks); estimate if the exact value is unknown
2. Prefix every bullet with "->"
3. Mark unverified information with [verify] instead of leaving a section empty
4. Use only real URLs from search results
5. primary_contact is the permit office from AIP GEN 1.2/1.4
6. Include at least 2 authority contacts when available (permits office and operations/customs)
7. Cite AIP sections and regulation articles by their exact titles
"""


def build_prompt(country: str, iso3: str, source_texts: Optional[Sequence[str]] = None) -> str:
    """
    Build the grounding prompt for one country.

    ``source_texts`` are optional excerpts of stored regulatory documents; an
    empty or missing list is valid and leaves the model to its own searches.
    """
    parts = [GROUNDING_PROMPT]
    excerpts = [str(text).strip() for text in (source_texts or []) if str(text or "").strip()]
    if excerpts:
        parts.append("KNOWN SOURCE EXCERPTS (prefer these over search results when they conflict):")
        for idx, text in enumerate(excerpts, start=1):
            parts.append(f"[{idx}] {text[:SOURCE_EXCERPT_LIMIT]}")
        parts.append("")
    parts.append("Generate the brief for:")
    parts.append(f"Country: {country}")
    parts.append(f"ISO3 Code: {iso3}")
    return "\n".join(parts)


@dataclass
class GenerationResult:
    output: GeneratedSummary
    ai_request_id: Optional[str] = None
    grounding: Optional[GroundingInfo] = None


class SummaryGenerator:
    """
    Calls the model for one country and returns the coerced summary.

    When an AI request store is given, every call leaves an audit row: pending
    before the call, then draft on success or rejected on failure.
    """

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        ai_requests=None,
        *,
        grounding: bool = True,
    ):
        self._llm = llm
        self._ai_requests = ai_requests
        self.grounding = grounding

    @property
    def llm(self) -> BaseLLM:
        if self._llm is None:
            from .llm import get_llm
            self._llm = get_llm()
        return self._llm

    async def generate(
        self,
        country: str,
        iso3: str,
        sources: Optional[Sequence[Source]] = None,
    ) -> GenerationResult:
        """
        Generate a brief for ``country``.

        Raises:
            LLMError: model call failed or returned nothing usable
            SummaryParseError: response was not recoverable JSON
        """
        used: List[Source] = [item for item in (sources or []) if item.extracted_text]
        prompt = build_prompt(country, iso3, [item.extracted_text for item in used])

        request = None
        if self._ai_requests is not None:
            request = self._ai_requests.create(
                AiRequest(
                    iso3=iso3,
                    prompt=prompt[:PROMPT_AUDIT_LIMIT],
                    model=self.llm.model,
                    source_ids=[item.source_id for item in used],
                )
            )

        logger.info(f"Generating brief for {country} ({iso3}) with {len(used)} source excerpts")
        try:
            response = await self.llm.acomplete([Message.user(prompt)], grounding=self.grounding)
            output = parse_summary_response(response.content)
        except Exception as e:
            if request is not None:
                self._ai_requests.update(
                    request.request_id,
                    {"status": AiRequestStatus.REJECTED, "response": f"Error: {e}"},
                )
            raise

        if request is not None:
            self._ai_requests.update(
                request.request_id,
                {"status": AiRequestStatus.DRAFT, "response": response.content},
            )

        logger.info(f"Brief for {iso3}: {summary_stats(output.summary)}")
        return GenerationResult(
            output=output,
            ai_request_id=request.request_id if request is not None else None,
            grounding=response.grounding,
        )
