"""LLM-backed reviewer for criteria the rule engine cannot settle."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.config import Settings, get_settings, normalize_report_lang
from core.errors import RetryableReviewerError, ReviewerError
from pipelines.audit.cancellation import CancellationToken
from pipelines.audit.retry import is_retryable
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    CrossPageEvidence,
    ReviewHit,
    normalize_status,
)
from utils.llm_json import ReplyDecodeError, ReplyShapeError, load_reply

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

logger = logging.getLogger(__name__)


class ChatModelLike(Protocol):
    def with_structured_output(self, schema: type[BaseModel]) -> Any: ...
    def invoke(self, input: object) -> Any: ...


class _VerdictOutput(BaseModel):
    status: str
    confidence: Optional[float] = None
    rationale: str = ""
    evidence: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class _BatchItem(_VerdictOutput):
    criterion_id: str


class _BatchOutput(BaseModel):
    results: List[_BatchItem]

    model_config = ConfigDict(extra="ignore")


@dataclass(frozen=True)
class LLMReviewerConfig:
    model: str
    model_provider: str | None = None
    temperature: float = 0.0
    timeout: float | None = None
    max_tokens: int | None = None
    max_retries: int | None = 0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LLMReviewerConfig":
        resolved = settings or get_settings()
        if not resolved.ai_model:
            raise ValueError("Missing AUDIT_AI_MODEL for the AI reviewer.")
        return cls(
            model=resolved.ai_model,
            model_provider=resolved.ai_model_provider,
            temperature=resolved.ai_temperature,
            timeout=resolved.ai_timeout,
            max_tokens=resolved.ai_max_tokens,
            max_retries=resolved.ai_max_retries,
        )


_NON_VERIFIABLE_HINTS = (
    "insufficient",
    "not enough evidence",
    "missing evidence",
    "cannot verify",
    "cannot be verified",
    "unable to verify",
    "non-verifiable",
    "non verifiable",
    "preuves insuffisantes",
    "preuve insuffisante",
    "manque de preuves",
    "preuve manquante",
    "non vérifiable",
    "impossible de vérifier",
    "impossible a verifier",
)

_EVIDENCE_LIMITS = {
    "headings": 60,
    "links": 60,
    "formControls": 60,
    "images": 60,
    "frames": 20,
    "tables": 40,
    "listItems": 60,
    "langChanges": 40,
}


def looks_non_verifiable(rationale: str, evidence: Sequence[str]) -> bool:
    text = " ".join(f"{rationale or ''} {' '.join(evidence or [])}".split()).lower()
    if not text:
        return False
    return any(hint in text for hint in _NON_VERIFIABLE_HINTS)


def normalize_verdict_status(status: object, rationale: str, evidence: Sequence[str]) -> str:
    """A "Not conform" that only complains about missing evidence becomes "Non applicable"."""
    value = str(status or "").strip() or STATUS_NOT_CONFORM
    try:
        value = normalize_status(value)
    except ValueError:
        return value
    if value == STATUS_NOT_CONFORM and looks_non_verifiable(rationale, evidence):
        return STATUS_NON_APPLICABLE
    return value


def build_evidence(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    """Bounded view of the snapshot sent to the model."""
    evidence: Dict[str, Any] = {
        "doctype": snapshot.get("doctype") or "",
        "title": snapshot.get("title") or "",
        "lang": snapshot.get("lang") or "",
    }
    for key, limit in _EVIDENCE_LIMITS.items():
        value = snapshot.get(key)
        evidence[key] = list(value[:limit]) if isinstance(value, list) else []
    evidence["media"] = snapshot.get("media") or {"video": 0, "audio": 0, "object": 0}
    evidence["scripts"] = snapshot.get("scripts") or {"scriptTags": 0, "hasInlineHandlers": False}
    if snapshot.get("enrichment"):
        evidence["enrichment"] = snapshot["enrichment"]
    return evidence


_SYSTEM_PROMPT = {
    "en": (
        "You are an RGAA auditor. Reply with JSON only.\n"
        'Allowed statuses: "Conform", "Not conform", "Non applicable".\n'
        "Use only the provided evidence. If evidence is insufficient or non-verifiable, "
        'return "Non applicable" and explain what is missing.\n'
        "Always include 1-4 short evidence items for every result."
    ),
    "fr": (
        "Tu es un auditeur RGAA. Réponds uniquement en JSON.\n"
        'Statuts autorisés: "Conform", "Not conform", "Non applicable".\n'
        "Utilise uniquement les preuves fournies. Si les preuves sont insuffisantes ou non "
        'vérifiables, réponds "Non applicable" en expliquant ce qui manque.\n'
        "Fournis toujours 1-4 éléments de preuve courts pour chaque résultat."
    ),
}

_SINGLE_SHAPE = '{"status": ..., "confidence": 0-1, "rationale": ..., "evidence": [...]}'
_BATCH_SHAPE = (
    '{"results": [{"criterion_id": ..., "status": ..., "confidence": 0-1, '
    '"rationale": ..., "evidence": [...]}]}'
)


class LLMReviewer:
    """AIReviewer implementation over a langchain chat model."""

    def __init__(
        self,
        *,
        llm: ChatModelLike | None = None,
        config: LLMReviewerConfig | None = None,
        lang: str = "fr",
    ) -> None:
        if llm is None:
            llm = _init_chat_model(config or LLMReviewerConfig.from_settings())
        self._llm = llm
        self._lang = normalize_report_lang(lang)
        self.calls = 0

    async def review_batch(
        self,
        criteria: Sequence[Criterion],
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
    ) -> List[ReviewHit]:
        token.raise_if_cancelled()
        payload = {
            "url": url,
            "criteria": [
                {"criterion_id": c.id, "criterion_title": c.title, "theme": c.theme}
                for c in criteria
            ],
            "evidence": build_evidence(snapshot),
        }
        instruction = (
            "Return exactly one result per provided criterion, shaped as " + _BATCH_SHAPE
        )
        output = await self._call(_BatchOutput, instruction, payload)
        requested = {criterion.id for criterion in criteria}
        hits: List[ReviewHit] = []
        for item in output.results:
            if item.criterion_id not in requested:
                logger.debug("Ignoring unrequested criterion %s in batch reply", item.criterion_id)
                continue
            hits.append(_to_hit(item.criterion_id, item))
        return hits

    async def review_one(
        self,
        criterion: Criterion,
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
        retry: bool = False,
    ) -> ReviewHit:
        token.raise_if_cancelled()
        payload = {
            "criterion_id": criterion.id,
            "criterion_title": criterion.title,
            "url": url,
            "evidence": build_evidence(snapshot),
        }
        instruction = "Return one verdict shaped as " + _SINGLE_SHAPE
        if retry:
            instruction += ". A previous pass could not decide; commit to a status."
        output = await self._call(_VerdictOutput, instruction, payload)
        return _to_hit(criterion.id, output)

    async def review_cross_page(
        self,
        criterion: Criterion,
        evidence: Sequence[CrossPageEvidence],
        *,
        token: CancellationToken,
    ) -> ReviewHit:
        token.raise_if_cancelled()
        payload = {
            "criterion_id": criterion.id,
            "criterion_title": criterion.title,
            "pages": [item.model_dump(by_alias=True) for item in evidence],
        }
        instruction = (
            "Judge the criterion across all listed pages of the same site. "
            "Return one verdict shaped as " + _SINGLE_SHAPE
        )
        output = await self._call(_VerdictOutput, instruction, payload)
        return _to_hit(criterion.id, output)

    async def _call(self, schema: type[BaseModel], instruction: str, payload: Mapping[str, Any]) -> Any:
        messages = _build_messages(
            _SYSTEM_PROMPT[self._lang],
            instruction + "\n\nData:\n" + json.dumps(payload, ensure_ascii=False, default=str),
        )
        self.calls += 1
        try:
            return await asyncio.to_thread(_invoke_model, self._llm, schema, messages)
        except ReviewerError:
            raise
        except Exception as exc:
            if is_retryable(exc):
                raise RetryableReviewerError(f"AI reviewer timed out: {exc}") from exc
            raise ReviewerError(f"AI reviewer failed: {exc}") from exc


def _to_hit(criterion_id: str, output: _VerdictOutput) -> ReviewHit:
    evidence = [str(item) for item in output.evidence if str(item).strip()]
    status = normalize_verdict_status(output.status, output.rationale, evidence)
    try:
        return ReviewHit(
            criterion_id=criterion_id,
            status=status,
            confidence=output.confidence,
            rationale=output.rationale,
            evidence=evidence,
        )
    except ValidationError as exc:
        raise ReviewerError(f"Invalid verdict for {criterion_id}: {output.status!r}") from exc


def _init_chat_model(config: LLMReviewerConfig) -> ChatModelLike:
    from langchain.chat_models import init_chat_model

    kwargs: dict[str, Any] = {}
    if config.model_provider:
        kwargs["model_provider"] = config.model_provider
    if config.temperature is not None:
        kwargs["temperature"] = config.temperature
    if config.timeout is not None:
        kwargs["timeout"] = config.timeout
    if config.max_tokens is not None:
        kwargs["max_tokens"] = config.max_tokens
    if config.max_retries is not None:
        kwargs["max_retries"] = config.max_retries
    return init_chat_model(config.model, **kwargs)


def _build_messages(system_prompt: str, user_prompt: str) -> "list[BaseMessage]":
    from langchain_core.messages import HumanMessage, SystemMessage

    return [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]


def _invoke_model(model: ChatModelLike, schema: type[BaseModel], messages: list) -> Any:
    try:
        structured = model.with_structured_output(schema)
        result = structured.invoke(messages)
        if isinstance(result, schema):
            return result
    except Exception as exc:
        if is_retryable(exc):
            raise
        logger.debug("Structured output unavailable, falling back to raw JSON: %s", exc)

    raw = model.invoke(messages)
    content = getattr(raw, "content", raw)
    if not isinstance(content, str):
        content = str(content)
    return parse_verdict(content, schema)


def parse_verdict(text: str, schema: type[BaseModel]) -> Any:
    list_key = "results" if issubclass(schema, _BatchOutput) else None
    try:
        return load_reply(text, schema, list_key=list_key)
    except ReplyDecodeError as exc:
        raise ReviewerError("AI reviewer did not return a JSON object") from exc
    except ReplyShapeError as exc:
        raise ReviewerError("AI reviewer JSON did not match the expected shape") from exc


__all__ = [
    "LLMReviewer",
    "LLMReviewerConfig",
    "build_evidence",
    "looks_non_verifiable",
    "normalize_verdict_status",
    "parse_verdict",
]
