from __future__ import annotations

import asyncio
import logging
import warnings
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from json_repair import repair_json
from pydantic import BaseModel, ValidationError

from .errors import ClassificationUnavailableError, InvalidConfigError
from .schema import DEFAULT_PRESET, AttributeTuple, StoryPreset

_LOGGER = logging.getLogger("soundstory.classifier")
_DEFAULT_TEMPERATURE = 0.0
_RESERVED_LITELLM_KWARGS = frozenset({"model", "messages", "response_format", "api_key"})
_litellm_logging_configured = False


class AttributeClassifier(Protocol):
    async def classify(
        self,
        transcript: str,
        *,
        context: Sequence[AttributeTuple] = (),
        preset: StoryPreset = DEFAULT_PRESET,
    ) -> AttributeTuple: ...


def build_classifier_prompt(
    transcript: str,
    context: Sequence[AttributeTuple] = (),
    preset: StoryPreset = DEFAULT_PRESET,
) -> str:
    lines = [
        f"You are analyzing storytelling narration for a {preset} session.",
        "",
        f'Current transcription: "{transcript}"',
        "",
    ]
    if context:
        lines.append("Previous analyses for context (apply smoothing to avoid overreacting):")
        lines.extend(f"- {item.describe()}" for item in context)
        lines.append("")
    lines.extend(
        [
            "Analyze the narration and determine:",
            "- Emotional tone and mood",
            "- Setting/location described",
            "- Intensity level of the action or emotion (0.0 to 1.0)",
            "- Type of narrative event occurring",
            "",
            "Apply smoothing: avoid overreacting to single words. "
            "Consider context from recent analyses.",
            "",
            "Return structured JSON with mood, setting (enum), intensity (0.0-1.0), "
            "and narrativeEvent (enum).",
        ]
    )
    return "\n".join(lines)


def _extract_json_payload(content: str) -> str | None:
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return content[start : end + 1]


def _content_snippet(content: str, limit: int = 200) -> str:
    cleaned = content.strip()
    if len(cleaned) <= limit:
        return cleaned
    return f"{cleaned[:limit]}..."


def _configure_litellm_logging(litellm_module: Any) -> None:
    global _litellm_logging_configured
    if _litellm_logging_configured:
        return
    _litellm_logging_configured = True
    try:
        litellm_module.turn_off_message_logging = True
        litellm_module.disable_streaming_logging = True
    except Exception as exc:
        _LOGGER.info("LiteLLM logging config failed: %s", exc, exc_info=True)
    warnings.filterwarnings("ignore", message="Pydantic serializer warnings")


class _LiteLLMRequest(BaseModel):
    model: str
    messages: list[dict[str, str]]
    temperature: float | None = None
    response_format: type[BaseModel] | None = None
    api_key: str | None = None


class LiteLLMClassifier:
    """Narration classifier backed by any LiteLLM chat model."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        litellm_kwargs: Mapping[str, Any] | None = None,
        temperature: float | None = _DEFAULT_TEMPERATURE,
        timeout: float | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._litellm_kwargs = dict(litellm_kwargs or {})
        self._temperature = temperature
        self._timeout = timeout
        if self._api_key is None:
            _LOGGER.debug("No API key provided; letting LiteLLM read from env vars.")
        invalid_keys = _RESERVED_LITELLM_KWARGS.intersection(self._litellm_kwargs)
        if invalid_keys:
            keys = ", ".join(sorted(invalid_keys))
            raise InvalidConfigError(f"litellm_kwargs cannot override: {keys}")

    @property
    def model(self) -> str:
        return self._model

    async def classify(
        self,
        transcript: str,
        *,
        context: Sequence[AttributeTuple] = (),
        preset: StoryPreset = DEFAULT_PRESET,
    ) -> AttributeTuple:
        if not transcript.strip():
            raise ClassificationUnavailableError("transcript is empty")
        try:
            import litellm  # type: ignore[import]
        except ImportError as exc:
            _LOGGER.warning("LiteLLM not installed: %s", exc)
            raise ClassificationUnavailableError("litellm is not installed") from exc

        _configure_litellm_logging(litellm)
        messages = [
            {"role": "user", "content": build_classifier_prompt(transcript, context, preset)},
        ]
        request = _LiteLLMRequest(
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            response_format=AttributeTuple,
            api_key=self._api_key or None,
        ).model_dump(exclude_none=True)
        request.update(self._litellm_kwargs)

        try:
            response: Any = await asyncio.wait_for(
                litellm.acompletion(**request),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            _LOGGER.warning("Classification timed out after %ss", self._timeout)
            raise ClassificationUnavailableError("classification timed out") from exc
        except Exception as exc:  # pragma: no cover - provider errors
            _LOGGER.warning("LiteLLM request failed: %s", exc, exc_info=True)
            raise ClassificationUnavailableError(str(exc)) from exc

        try:
            raw_content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise ClassificationUnavailableError("LiteLLM response missing choices") from exc
        if not isinstance(raw_content, str) or not raw_content.strip():
            raise ClassificationUnavailableError("LiteLLM returned empty content")
        content = raw_content.strip()
        return self._parse(content)

    def _parse(self, content: str) -> AttributeTuple:
        try:
            return AttributeTuple.model_validate_json(content)
        except ValidationError as exc:
            extracted = _extract_json_payload(content)
            if extracted and extracted != content:
                try:
                    return AttributeTuple.model_validate_json(extracted)
                except ValidationError:
                    _LOGGER.warning("LiteLLM returned invalid JSON after extraction.", exc_info=True)
            repaired = repair_json(content)
            if isinstance(repaired, str) and repaired.strip():
                try:
                    return AttributeTuple.model_validate_json(repaired)
                except ValidationError:
                    _LOGGER.warning("LiteLLM returned invalid JSON after repair.", exc_info=True)
            snippet = _content_snippet(content) or "<empty>"
            _LOGGER.warning("LiteLLM returned invalid attributes: %s", snippet)
            raise ClassificationUnavailableError(
                f"LiteLLM returned unusable content: {snippet}"
            ) from exc
