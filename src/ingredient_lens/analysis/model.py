from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..logging import get_logger
from .constants import CONFIDENCE_CHOICES

LOG = get_logger("analysis-model")


class ModelCallError(Exception):
    """The model could not produce a parsable answer for this attempt."""


# ---------- prompt & schema ----------
SYSTEM_PROMPT = """
You help people make quick, calm decisions about packaged food from its ingredient list.

Look at the list as a whole and say what kind of product it seems to be and what kind
of choice that implies. Do not assess nutrition, do not go through ingredients one by
one, do not make health claims, do not call a product good or bad, and do not give advice.

## Vocabulary
Never use: analyze/analysis, signal(s), cue(s), pattern(s), orient/orientation,
interpret/interpretation, structural, formulation, system, model, highly processed,
healthy/unhealthy, toxic, inflammatory, causes, damages, beneficial, harmful,
recommend, avoid, should/shouldn't. Rewrite any draft that contains them.

## Not an ingredient list
If the text is not plausibly a food ingredient list, answer exactly:
{"judgment": "This doesn't look like an ingredient list. Paste what you see on the package.",
 "key_factors": [{"factor": "Nothing to go on", "explanation": "Without actual ingredients, there's no way to frame what kind of product this is."}],
 "tradeoffs": "Pasting real ingredients gives you clarity; skipping that step leaves you guessing.",
 "uncertainty": "Can't determine product type, purpose, or what kind of decision this represents.",
 "confidence": "low"}

## Output (strict)
Return ONLY one JSON object with these keys:
- judgment: one or two calm sentences framing what kind of product this appears to be
  (e.g. "This looks like a convenience-driven snack built for portability and long shelf life.").
- key_factors: 2-3 objects {"factor": plain observation about the list as a whole,
  "explanation": why it helps frame the decision}.
- tradeoffs: one neutral sentence, "You get ...; you give up ...".
- uncertainty: what the label cannot tell: quantities, how often the person eats this,
  what else they eat, whether it is a treat or a staple, their personal context.
- confidence: "high" when the product type is obvious, "medium" for most products,
  "low" for ambiguous or unusual lists.

No markdown, no code fences, no commentary.
""".strip()


def analysis_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["judgment", "key_factors", "tradeoffs", "uncertainty", "confidence"],
        "properties": {
            "judgment": {"type": "string"},
            "key_factors": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["factor", "explanation"],
                    "properties": {
                        "factor": {"type": "string"},
                        "explanation": {"type": "string"},
                    },
                },
            },
            "tradeoffs": {"type": "string"},
            "uncertainty": {"type": "string"},
            "confidence": {"type": "string", "enum": list(CONFIDENCE_CHOICES)},
        },
    }


def scavenge_json_block(s: str) -> Optional[Any]:
    """Best-effort JSON recovery from fenced or chatty model output."""
    if not s:
        return None

    candidates: List[str] = []

    fenced = re.search(r"```(?:json)?\s*(.*?)```", s, re.DOTALL)
    if fenced and fenced.group(1):
        candidates.append(fenced.group(1).strip())

    start_obj = s.find("{")
    end_obj = s.rfind("}")
    if start_obj != -1 and end_obj != -1 and end_obj > start_obj:
        candidates.append(s[start_obj : end_obj + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue

    return None


class OpenAIAnalyzer:
    """One chat-completions call per `complete()`; retries live in the caller."""

    def __init__(
        self,
        client: Any,
        model_name: str,
        *,
        temperature: float = 0.7,
        timeout: float = 60.0,
    ) -> None:
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.timeout = timeout

    def _messages(self, input_text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Ingredient list:\n{input_text}"},
        ]

    def complete(self, input_text: str) -> Any:
        t0 = time.perf_counter()
        try:
            completion = self.client.chat.completions.create(
                model=self.model_name,
                messages=self._messages(input_text),
                temperature=self.temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "ingredient_analysis", "strict": True, "schema": analysis_schema()},
                },
                timeout=self.timeout,
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error("Network/timeout while calling the model: %s", e)
            raise ModelCallError("model unreachable") from e
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error("Model API returned %s. Body preview: %r", getattr(e, "status_code", "?"), (body[:300] if body else None))
            raise ModelCallError(f"model API status {getattr(e, 'status_code', '?')}") from e
        except OpenAIError as e:
            LOG.error("Model call failed: %s", e)
            raise ModelCallError(str(e)) from e

        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        text = getattr(message, "content", None) if message is not None else None

        usage = getattr(completion, "usage", None)
        usage_dict = {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")}
        LOG.info(
            "Chat completion finished in %.2fs id=%s usage=%s",
            time.perf_counter() - t0, getattr(completion, "id", None), usage_dict,
        )

        if not text:
            raise ModelCallError("model returned no content")
        try:
            return json.loads(text)
        except ValueError:
            LOG.debug("JSON parse failed for model=%s; attempting fallback (first 500 chars: %r)", self.model_name, text[:500])
        data = scavenge_json_block(text)
        if data is None:
            raise ModelCallError("model output is not valid JSON")
        return data


def build_openai_analyzer(
    api_key: str,
    model_name: str,
    *,
    base_url: Optional[str] = None,
    timeout: float = 60.0,
) -> OpenAIAnalyzer:
    """Create an analyzer over the OpenAI SDK with SDK-level retries disabled."""
    http_client = httpx.Client(
        timeout=httpx.Timeout(connect=10.0, read=float(timeout), write=30.0, pool=10.0),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
    )
    client = OpenAI(
        api_key=api_key,
        base_url=base_url,
        http_client=http_client,
        max_retries=0,
    )
    LOG.info("Model analyzer ready: model=%s base_url=%s", model_name, base_url or "default")
    return OpenAIAnalyzer(client, model_name, timeout=timeout)
