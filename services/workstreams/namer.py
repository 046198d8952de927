"""
Workstream Naming Service
Uses an LLM to generate human-readable names and descriptions for achievement clusters
"""

import json
import re
from collections import Counter
from typing import Protocol, Sequence

import httpx
import structlog

from shared.schemas import EmbeddedItem, WorkstreamName

from . import config
from .errors import NamingProviderError

logger = structlog.get_logger()

MAX_NAME_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 1000

# Achievements shown to the naming provider per cluster
NAMING_SAMPLE_SIZE = 15

FALLBACK_NAME = "Unnamed Workstream"

STOP_WORDS = {
    "the", "and", "that", "this", "from", "with", "were", "been", "have",
    "will", "would", "could", "should", "which", "their", "there", "about",
    "when", "what", "your", "into", "over", "more",
}


WORKSTREAM_NAME_PROMPT = """Analyze these achievements and generate a workstream name and description.

ACHIEVEMENTS:
{achievements}

Respond with JSON in this exact format:
{{
  "name": "2-5 word workstream name",
  "description": "1-2 sentence description of this workstream theme"
}}

Respond ONLY with valid JSON, no markdown or explanation."""


class NamingProvider(Protocol):
    """Anything that can name a sample of clustered achievements"""

    def name_cluster(self, sample: Sequence[EmbeddedItem]) -> WorkstreamName: ...


class WorkstreamNamer:
    """Generates workstream names using an Ollama-hosted LLM"""

    def __init__(
        self,
        ollama_url: str = config.OLLAMA_URL,
        model: str = config.NAMING_MODEL,
        timeout: float = config.NAMING_TIMEOUT,
    ):
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def name_cluster(self, sample: Sequence[EmbeddedItem]) -> WorkstreamName:
        """
        Generate a name and description for a cluster.

        Args:
            sample: Representative achievements of the cluster

        Returns:
            WorkstreamName truncated to the allowed lengths

        Raises:
            NamingProviderError: on HTTP failure or an unusable reply
        """
        if not sample:
            raise NamingProviderError("Cannot name an empty cluster")

        lines = []
        for item in sample[:NAMING_SAMPLE_SIZE]:
            if item.summary:
                lines.append(f"- {item.title}: {item.summary[:500]}")
            else:
                lines.append(f"- {item.title}")

        prompt = WORKSTREAM_NAME_PROMPT.format(achievements="\n".join(lines))

        try:
            response = self._call_ollama(prompt)
        except httpx.HTTPError as e:
            raise NamingProviderError(f"Ollama request failed: {e}") from e

        parsed = self._parse_response(response)
        name = str(parsed.get("name") or "").strip()
        description = str(parsed.get("description") or "").strip()
        if not name:
            raise NamingProviderError("LLM response did not contain a workstream name")

        return WorkstreamName(
            name=name[:MAX_NAME_LENGTH],
            description=description[:MAX_DESCRIPTION_LENGTH],
        )

    def _call_ollama(self, prompt: str) -> str:
        """Call Ollama API for completion"""
        response = httpx.post(
            f"{self.ollama_url}/api/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {"temperature": 0.7},
            },
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        result = response.json()
        return result.get("response", "")

    def _parse_response(self, response: str) -> dict:
        """Parse JSON from LLM response"""
        try:
            parsed = json.loads(response)
        except json.JSONDecodeError:
            # Models sometimes wrap the object in prose
            match = re.search(r"\{.*\}", response, re.DOTALL)
            if not match:
                logger.warning("Failed to parse LLM response as JSON", response=response[:200])
                return {}
            try:
                parsed = json.loads(match.group())
            except json.JSONDecodeError:
                logger.warning("Failed to parse LLM response as JSON", response=response[:200])
                return {}
        return parsed if isinstance(parsed, dict) else {}


def extract_common_words(titles: Sequence[str], top_k: int = 3) -> list[str]:
    """Most frequent non-trivial words across titles"""
    counter: Counter = Counter()
    for title in titles:
        words = [w.strip(".,:;!?()[]\"'") for w in title.lower().split()]
        counter.update(w for w in words if len(w) > 3 and w.isalpha() and w not in STOP_WORDS)
    return [word for word, _ in counter.most_common(top_k)]


def fallback_name(sample: Sequence[EmbeddedItem], member_count: int) -> WorkstreamName:
    """Heuristic name used when the naming provider fails"""
    words = extract_common_words([item.title for item in sample[:NAMING_SAMPLE_SIZE]])
    name = " ".join(words) or FALLBACK_NAME
    return WorkstreamName(
        name=name[:MAX_NAME_LENGTH],
        description=f"Workstream with {member_count} achievements",
    )
