"""
Grounded extraction ("two-step grounding").

Step 1 reads a posting URL through a grounding-capable provider and returns
cited prose. Step 2 structures that prose (or the prefetched source data)
into a JobExtraction through a structured-output provider.
"""
import logging
from typing import List, Optional, Tuple

from prepgen.core.exceptions import ExtractionParseError, NoValidSource, ProviderExhausted
from prepgen.core.prompts import job_extraction_prompt, job_grounding_prompt
from prepgen.schemas.curriculum import JobRecord, Source
from prepgen.schemas.llm import JobExtraction
from prepgen.services.pipeline.discovery import select_best_source

logger = logging.getLogger(__name__)

LEVELS = ("intern", "entry", "junior", "mid", "senior", "lead", "principal", "staff", "executive")
LEVEL_ALIASES = {
    "internship": "intern",
    "entry-level": "entry",
    "entry level": "entry",
    "graduate": "entry",
    "jr": "junior",
    "middle": "mid",
    "mid-level": "mid",
    "intermediate": "mid",
    "sr": "senior",
    "snr": "senior",
    "team lead": "lead",
    "tech lead": "lead",
    "director": "executive",
    "vp": "executive",
    "vice president": "executive",
    "head": "executive",
}
ARRANGEMENTS = ("onsite", "remote", "hybrid")

FALLBACK_RESPONSIBILITIES = [
    "Execute on key projects",
    "Collaborate with team members",
    "Contribute to company goals",
]
FALLBACK_SKILLS = ["Relevant experience", "Strong communication skills", "Team collaboration"]


def normalize_level(raw: Optional[str]) -> str:
    if not raw:
        return "mid"
    value = raw.strip().lower().rstrip(".")
    if value in LEVELS:
        return value
    if value in LEVEL_ALIASES:
        return LEVEL_ALIASES[value]
    for level in LEVELS:
        if level in value:
            return level
    for alias, level in LEVEL_ALIASES.items():
        if alias in value:
            return level
    return "mid"


def normalize_work_arrangement(raw: Optional[str]) -> str:
    if not raw:
        return "unspecified"
    value = raw.strip().lower().replace("-", "").replace(" ", "")
    if value in ("onsite", "inoffice", "office"):
        return "onsite"
    for arrangement in ARRANGEMENTS:
        if arrangement in value:
            return arrangement
    return "unspecified"


def _clean_list(items: List[str]) -> List[str]:
    return [item.strip() for item in items if item and item.strip()]


def build_job_record(extraction: JobExtraction, source: Source) -> JobRecord:
    """
    Turn a validated extraction into the canonical JobRecord.

    Title and company fall back to the source's parsed data; if either is
    still empty the extraction is rejected.
    """
    data = source.data or {}
    title = (extraction.title or "").strip() or str(data.get("title") or "").strip()
    company = (extraction.company_name or "").strip() or str(data.get("company") or "").strip()

    missing = [name for name, value in (("title", title), ("company_name", company)) if not value]
    if missing:
        raise ExtractionParseError(
            f"Extraction is missing required field(s): {', '.join(missing)}",
            code="missing_field",
            details={"missing": missing},
        )

    return JobRecord(
        title=title,
        company_name=company,
        level=normalize_level(extraction.level),
        responsibilities=_clean_list(extraction.responsibilities),
        required_skills=_clean_list(extraction.required_skills),
        preferred_skills=_clean_list(extraction.preferred_skills),
        location=(extraction.location or "").strip() or None,
        work_arrangement=normalize_work_arrangement(extraction.work_arrangement),
        parsing_confidence=source.validation.confidence if source.validation else 0.7,
        source_url=source.url,
    )


def fallback_job_record(source: Source) -> Optional[JobRecord]:
    """Minimal JobRecord built from parsed source data, or None when title/company are unknown."""
    data = source.data or {}
    title = str(data.get("title") or "").strip()
    company = str(data.get("company") or "").strip()
    if not (title and company):
        return None
    return JobRecord(
        title=title,
        company_name=company,
        level=normalize_level(title),
        responsibilities=list(FALLBACK_RESPONSIBILITIES),
        required_skills=list(FALLBACK_SKILLS),
        parsing_confidence=0.3,
        source_url=source.url,
    )


async def extract_job(sources: List[Source], gateway) -> Tuple[JobRecord, List[str]]:
    """
    Run the two-step extraction against the best available source.

    Returns the JobRecord and any warnings. Raises ``NoValidSource``,
    ``ExtractionParseError``, or ``ProviderExhausted`` when no sane default exists.
    """
    source = select_best_source(sources)
    if source is None:
        raise NoValidSource("No valid job source found")

    warnings: List[str] = []
    grounded_text = None

    if source.has_url and not source.data:
        try:
            grounded = await gateway.generate_grounded(
                "job_grounding",
                job_grounding_prompt(source.url),
                references=[source.url],
            )
            grounded_text = grounded.text.strip() or None
            logger.info(f"Grounded job posting: {len(grounded.citations)} citation(s)")
        except ProviderExhausted as e:
            logger.warning(f"Grounding unavailable for {source.url}; extracting directly")
            warnings.append(f"Grounding unavailable, extracted directly from URL: {e.message}")

    prompt = job_extraction_prompt(grounded_text=grounded_text, source_data=source.data, url=source.url)
    try:
        extraction = await gateway.generate_structured(JobExtraction, "job_parsing", prompt)
    except ProviderExhausted:
        fallback = fallback_job_record(source)
        if fallback is None:
            raise
        logger.warning("Structured extraction unavailable; using fallback job data from input")
        warnings.append("Using fallback job parsing due to provider failure")
        return fallback, warnings

    job = build_job_record(extraction, source)
    logger.info(f"Extracted job: {job.title} at {job.company_name} ({job.level})")
    return job, warnings
