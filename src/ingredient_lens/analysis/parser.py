from __future__ import annotations

from typing import Any, Dict, List

from ..domain.normalize import canonicalize_analysis, has_field
from ..logging import get_logger
from .constants import CONFIDENCE_CHOICES, REQUIRED_FIELDS


LOG = get_logger("analysis-parser")


class AnalysisValidationError(ValueError):
    pass


def require_analysis_fields(payload: Any) -> Dict[str, Any]:
    """Structural check used by the client before trusting a response.

    The payload must be an object carrying every required field under either
    naming scheme. Returns the canonicalized payload.
    """
    if not isinstance(payload, dict):
        raise AnalysisValidationError("Payload must be a JSON object")
    for name in REQUIRED_FIELDS:
        if not has_field(payload, name):
            LOG.error("Missing field in response: %s", name)
            raise AnalysisValidationError(f"{name} required")
    return canonicalize_analysis(payload)


def parse_and_validate_analysis(payload: Any) -> Dict[str, Any]:
    """Validate model output and normalize it to the canonical shape.

    Expected input shape (either naming scheme):
    - judgment: str
    - key_factors | observations: non-empty list of
      {factor, explanation} | {observation, why}, all strings
    - tradeoffs | tradeoff: str
    - uncertainty | limitations: str
    - confidence: low | medium | high
    """
    canon = require_analysis_fields(payload)

    def _text(name: str) -> str:
        value = canon.get(name)
        if not isinstance(value, str):
            raise AnalysisValidationError(f"{name} must be a string")
        return value.strip()

    judgment = _text("judgment")
    tradeoffs = _text("tradeoffs")
    uncertainty = _text("uncertainty")

    confidence = canon.get("confidence")
    if not isinstance(confidence, str) or confidence.strip().lower() not in CONFIDENCE_CHOICES:
        raise AnalysisValidationError(f"confidence must be one of {', '.join(CONFIDENCE_CHOICES)}")

    factors_in = canon.get("key_factors")
    if not isinstance(factors_in, list) or not factors_in:
        raise AnalysisValidationError("key_factors must be a non-empty list")
    factors: List[Dict[str, str]] = []
    for idx, entry in enumerate(factors_in):
        if not isinstance(entry, dict):
            raise AnalysisValidationError(f"key_factors[{idx}] must be an object")
        factor = entry.get("factor")
        explanation = entry.get("explanation")
        if not isinstance(factor, str):
            raise AnalysisValidationError(f"key_factors[{idx}].factor must be a string")
        if not isinstance(explanation, str):
            raise AnalysisValidationError(f"key_factors[{idx}].explanation must be a string")
        factors.append({"factor": factor.strip(), "explanation": explanation.strip()})

    normalized = {
        "judgment": judgment,
        "key_factors": factors,
        "tradeoffs": tradeoffs,
        "uncertainty": uncertainty,
        "confidence": confidence.strip().lower(),
    }
    LOG.debug("Validated analysis payload with %d key factor(s)", len(factors))
    return normalized
