"""
LLM client for OpenAI-compatible APIs: query expansion and passage reranking.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv
from openai import AsyncOpenAI

from src.rag.errors import ExpansionFailure
from src.rag.retriever import RerankResult, RetrievedPassage

# Load .env file if it exists
project_root = Path(__file__).resolve().parents[2]
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Any OpenAI-compatible endpoint: set LLM_BASE_URL + LLM_API_KEY, else OpenAI itself.
LLM_BASE_URL = os.getenv("LLM_BASE_URL")
LLM_API_KEY = os.getenv("LLM_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")

MAX_EXPANSIONS = 3
MAX_RERANK_PASSAGES = 10

logger = logging.getLogger(__name__)

EXPAND_SYSTEM_PROMPT = (
    "You rewrite exam questions about UK financial regulation into short search queries. "
    "Return strict JSON with key \"queries\": a list of at most 3 alternative phrasings "
    "that use the terminology a study textbook would use. Do not answer the question."
)

RERANK_SYSTEM_PROMPT = (
    "You are a precise reranker. Select the single most relevant passage for the question "
    "and return strict JSON with keys page, exactQuote, rationale, confidence (0-1). "
    "Keep rationale concise (<=50 words)."
)


def _resolve_client_params(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> tuple[str, Optional[str]]:
    """Resolve api_key and base_url from args or env (custom endpoint when set, else OpenAI)."""
    if base_url or LLM_BASE_URL:
        key = api_key or LLM_API_KEY or os.getenv("OPENAI_API_KEY") or ""
        return key, base_url or LLM_BASE_URL
    return api_key or os.getenv("OPENAI_API_KEY") or "", None


def create_async_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 30.0,
) -> AsyncOpenAI:
    """Create an AsyncOpenAI client for OpenAI or a compatible endpoint."""
    key, base = _resolve_client_params(api_key=api_key, base_url=base_url)
    if not key:
        raise ValueError("API key required. Set OPENAI_API_KEY (or LLM_API_KEY with LLM_BASE_URL).")
    return AsyncOpenAI(api_key=key, base_url=base, timeout=timeout, max_retries=2)


def _parse_json(content: Optional[str]) -> dict:
    try:
        data = json.loads(content or "{}")
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


class LLMQueryAssistant:
    """Advisory LLM collaborator; every failure surfaces as ExpansionFailure."""

    def __init__(self, client: AsyncOpenAI, model_name: str = LLM_MODEL):
        self.client = client
        self.model_name = model_name

    @classmethod
    def from_env(cls, model_name: Optional[str] = None) -> "LLMQueryAssistant":
        return cls(create_async_client(), model_name=model_name or LLM_MODEL)

    async def _complete_json(self, system: str, user: str, max_tokens: int) -> dict:
        try:
            resp = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                response_format={"type": "json_object"},
                temperature=0,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.error("Error calling LLM API: %s", e)
            raise ExpansionFailure(str(e)) from e
        if not resp.choices:
            raise ExpansionFailure("Empty response from LLM API")
        return _parse_json(resp.choices[0].message.content)

    async def expand_query(self, question: str, explanation: Optional[str] = None) -> List[str]:
        """Alternative phrasings of the question, original excluded."""
        user = json.dumps({"question": question, "explanation": explanation or ""}, ensure_ascii=False)
        data = await self._complete_json(EXPAND_SYSTEM_PROMPT, user, max_tokens=300)
        queries = data.get("queries")
        if not isinstance(queries, list):
            raise ExpansionFailure("LLM expansion returned no 'queries' list")
        return [str(q).strip() for q in queries if str(q).strip()][:MAX_EXPANSIONS]

    async def rerank(
        self,
        question: str,
        passages: Sequence[RetrievedPassage],
        explanation: Optional[str] = None,
    ) -> RerankResult:
        """Ask the LLM for the single best passage among the first ten."""
        if not passages:
            raise ExpansionFailure("Nothing to rerank")
        candidates = list(passages)[:MAX_RERANK_PASSAGES]
        user = json.dumps(
            {
                "question": question,
                "explanation": explanation or "",
                "passages": [p.to_dict() for p in candidates],
            },
            ensure_ascii=False,
        )
        data = await self._complete_json(RERANK_SYSTEM_PROMPT, user, max_tokens=200)
        try:
            page = int(data["page"])
        except (KeyError, TypeError, ValueError) as e:
            raise ExpansionFailure(f"LLM rerank returned no usable page: {data!r}") from e

        chosen = next((p for p in candidates if p.page == page), None)
        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        return RerankResult(
            page=page,
            score=chosen.score if chosen else 0.0,
            confidence=max(0.0, min(1.0, confidence)),
            exact_quote=str(data.get("exactQuote") or ""),
            rationale=str(data.get("rationale") or ""),
        )
