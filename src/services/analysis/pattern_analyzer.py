"""
Recurring speaking-pattern analysis.

Sends a transcript to the configured LLM and parses the reply into an
``AnalysisResult``. Parsing fails closed: a reply that is not JSON, has an
unknown category or severity, or lists more than five insights raises
``AnalysisError`` and nothing from it is kept.
"""

import json
import logging

from pydantic import ValidationError

from src.core.exceptions import AnalysisError, MissingCredentialsError
from src.core.models import AnalysisResult
from src.core.utils import strip_code_fences
from src.services.llm.base import BaseLLM

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an English language pattern analyzer for B2-C1+ English learners practicing speaking.

Your task: Analyze this transcript and identify the TOP 3-5 RECURRING patterns (not isolated mistakes). Focus on habits that appear multiple times across the session.

Pattern categories:
- grammar: repeated misuse of tenses, articles, prepositions, subject-verb agreement
- vocabulary: overused filler words, limited connector variety, repetitive word choice
- structure: repetitive sentence starters, complexity avoidance, monotonous rhythm

For each pattern found, provide:
- category: 'grammar' | 'vocabulary' | 'structure'
- pattern: Clear name (e.g., "Missing articles before nouns", "Overuse of 'so' as connector")
- detail: Brief explanation (1-2 sentences)
- frequency: Approximate count of occurrences in transcript
- severity: 'high' | 'medium' | 'low' (based on impact on clarity and naturalness)
- examples: Array of 2-3 exact quotes from transcript showing the pattern
- suggestion: ONE specific, actionable improvement tip

Also provide:
- focusNext: ONE concrete focus area for the next speaking session (specific and measurable)
- summary: 2-3 sentence overall assessment of speaking proficiency and main strengths/weaknesses

Respond with ONLY valid JSON. No markdown, no explanations. Just the JSON object.

Schema:
{
  "insights": [
    {
      "category": "grammar" | "vocabulary" | "structure",
      "pattern": "string",
      "detail": "string",
      "frequency": number,
      "severity": "high" | "medium" | "low",
      "examples": ["string", "string"],
      "suggestion": "string"
    }
  ],
  "focusNext": "string",
  "summary": "string"
}"""


def parse_analysis(raw_response: str) -> AnalysisResult:
    """Parse and validate a raw LLM reply.

    Raises:
        AnalysisError: If the reply is not JSON or violates the schema.
    """
    text = strip_code_fences(raw_response)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise AnalysisError(detail=f"Invalid JSON from LLM: {text[:200]}") from exc

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as exc:
        raise AnalysisError(
            detail=f"Analysis response failed validation: {exc.error_count()} error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
        ) from exc


class PatternAnalyzer:
    """Detects recurring grammar, vocabulary and structure patterns."""

    def __init__(self, llm: BaseLLM) -> None:
        """Initialize with the configured LLM provider.

        Args:
            llm: An LLM provider implementing ``BaseLLM``.
        """
        self._llm = llm

    async def analyze(self, transcript: str) -> AnalysisResult:
        """Analyze a transcript.

        Args:
            transcript: Full session transcript.

        Returns:
            Validated insights (at most five), the next-session focus and a summary.

        Raises:
            MissingCredentialsError: If the LLM provider is not configured.
            AnalysisError: If the LLM call fails or its reply is invalid.
        """
        prompt = f"{ANALYSIS_PROMPT}\n\nTranscript:\n{transcript}"
        try:
            raw_response = await self._llm.generate(prompt)
        except MissingCredentialsError:
            raise
        except Exception as exc:
            raise AnalysisError(detail=f"LLM call failed: {exc}") from exc

        result = parse_analysis(raw_response)
        logger.info(
            "Analysis produced %d insight(s): %s",
            len(result.insights),
            ", ".join(i.profile_key for i in result.insights) or "-",
        )
        return result
