"""Match prompt construction and parsing of the model's match report.

The model is asked for one block per candidate::

    CANDIDATE_ID: 7
    SCORE: 85
    REASONING: ...
    DETAILED_EVALUATION: ...
    ---

``parse_match_response`` reads that format strictly. ``heuristic_matches``
is a degraded mode for free text that ignores the format; every match it
returns is flagged ``low_confidence``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from jobproof.sdk.exceptions import ParseFailure
from jobproof.sdk.models import AIMatch, JobPosting, JobSeeker

MIN_SCORE = 30
MAX_HEURISTIC_MATCHES = 3
SECTION_SEPARATOR = "---"
FIELDS = ("CANDIDATE_ID", "SCORE", "REASONING", "DETAILED_EVALUATION")

DEFAULT_REASONING = "AI-generated match"
DEFAULT_EVALUATION = "Detailed evaluation not available"
HEURISTIC_REASONING = "AI analysis with basic scoring"
HEURISTIC_EVALUATION = "Basic fallback evaluation - detailed analysis unavailable"


class ParseMode(str, Enum):
    """How to treat a model response that does not follow the block format."""
    STRICT = "strict"
    DEGRADED = "degraded"


def build_match_prompt(job: JobPosting, candidates: Sequence[JobSeeker]) -> str:
    """Build the recruiter prompt for one job against all candidates."""
    candidate_blocks = "\n\n".join(
        f"{index}. ID: {c.id}\n"
        f"   Name: {c.name}\n"
        f"   Skills: {', '.join(c.skills)}\n"
        f"   Location: {c.location}\n"
        f"   Expected Salary: ${c.expected_salary}"
        for index, c in enumerate(candidates, start=1)
    )
    return f"""You are an expert HR consultant and technical recruiter. Analyze the following job posting and candidates to find the best matches.

JOB POSTING:
Title: {job.title}
Description: {job.description}
Required Skills: {', '.join(job.required_skills)}
Location: {job.location}
Salary: ${job.salary}

CANDIDATES:
{candidate_blocks}

Please evaluate each candidate and provide:
1. A match score from 0-100 for each candidate
2. Brief reasoning for each score
3. Detailed evaluation covering technical skills, location fit, salary match, and overall assessment
4. Consider: technical skill alignment, location compatibility, salary expectations, and overall fit

Format your response EXACTLY as follows for each candidate:
CANDIDATE_ID: [id]
SCORE: [0-100]
REASONING: [brief explanation in 1-2 sentences]
DETAILED_EVALUATION: [comprehensive analysis covering technical skills (rate 1-10), location compatibility, salary expectations match, overall fit assessment, strengths for this role, potential concerns, and final recommendation (Strong Fit/Good Fit/Partial Fit/Poor Fit)]
---

Only include candidates with scores of {MIN_SCORE} or higher. Be selective and realistic with scoring."""


def parse_match_response(text: str, job: JobPosting, candidates: Sequence[JobSeeker]) -> list[AIMatch]:
    """Parse the model's block-formatted match report.

    Blocks scoring below the threshold or naming unknown candidates are
    dropped, as is commentary carrying none of the fields. A block with some
    fields but no integer id and score is a format violation.

    Raises:
        ParseFailure: A block does not follow the format, or non-empty text
            contains no block at all
    """
    by_id = {c.id: c for c in candidates}
    matches: list[AIMatch] = []
    blocks = 0
    for number, section in enumerate(_sections(text), start=1):
        fields = _parse_section(section)
        if not fields:
            continue
        blocks += 1
        candidate_id = _parse_int(fields.get("CANDIDATE_ID"), "CANDIDATE_ID", number)
        score = _parse_int(fields.get("SCORE"), "SCORE", number)
        if score < MIN_SCORE or candidate_id not in by_id:
            continue
        matches.append(AIMatch(
            job_id=job.id,
            seeker_id=candidate_id,
            score=min(100, max(0, score)),
            reasoning=fields.get("REASONING") or DEFAULT_REASONING,
            job_title=job.title,
            seeker_name=by_id[candidate_id].name,
            detailed_evaluation=fields.get("DETAILED_EVALUATION") or DEFAULT_EVALUATION,
        ))
    if text.strip() and not blocks:
        raise ParseFailure("Response contains no candidate blocks")
    return matches


def heuristic_matches(text: str, job: JobPosting, candidates: Sequence[JobSeeker]) -> list[AIMatch]:
    """Degraded extraction: pair the first numbers in the text with the first candidates.

    Only for responses the strict parser rejected. Results are low confidence.
    """
    numbers = [int(n) for n in re.findall(r"\b\d{1,3}\b", text)]
    if not numbers:
        return []
    matches: list[AIMatch] = []
    for index, candidate in enumerate(candidates[:MAX_HEURISTIC_MATCHES]):
        score = numbers[index] if index < len(numbers) else 50
        if score < MIN_SCORE:
            continue
        matches.append(AIMatch(
            job_id=job.id,
            seeker_id=candidate.id,
            score=min(100, score),
            reasoning=HEURISTIC_REASONING,
            job_title=job.title,
            seeker_name=candidate.name,
            detailed_evaluation=HEURISTIC_EVALUATION,
            low_confidence=True,
        ))
    return matches


def extract_matches(
    text: str,
    job: JobPosting,
    candidates: Sequence[JobSeeker],
    mode: ParseMode = ParseMode.DEGRADED,
) -> list[AIMatch]:
    """Strict parse, falling back to heuristics only in degraded mode."""
    try:
        return parse_match_response(text, job, candidates)
    except ParseFailure:
        if mode is not ParseMode.DEGRADED:
            raise
        return heuristic_matches(text, job, candidates)


def _sections(text: str) -> list[str]:
    return [s.strip() for s in text.replace("\r\n", "\n").split(SECTION_SEPARATOR) if s.strip()]


def _parse_section(section: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    current: str | None = None
    for line in section.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        name, sep, value = stripped.partition(":")
        if sep and name.strip() in FIELDS:
            current = name.strip()
            fields[current] = value.strip()
        elif current == "DETAILED_EVALUATION":
            fields[current] += "\n" + stripped
    return fields


def _parse_int(value: str | None, field: str, section_number: int) -> int:
    if value is None:
        raise ParseFailure(f"Section {section_number} is missing {field}")
    match = re.fullmatch(r"\[?\s*(-?\d+)\s*\]?", value)
    if not match:
        raise ParseFailure(f"Section {section_number} has non-integer {field}: {value!r}")
    return int(match.group(1))
