"""Field-name compatibility adapter for analysis payloads.

Two naming schemes exist for the same fields. The storage names are
canonical; the conversational names are accepted at the edges only:

    observations[{observation, why}] -> key_factors[{factor, explanation}]
    tradeoff                         -> tradeoffs
    limitations                      -> uncertainty
"""

from typing import Any, Dict, Tuple

FIELD_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("key_factors", "observations"),
    ("tradeoffs", "tradeoff"),
    ("uncertainty", "limitations"),
)

FACTOR_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("factor", "observation"),
    ("explanation", "why"),
)


def _canonicalize_factor(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    out = {k: v for k, v in entry.items() if k not in {alias for _, alias in FACTOR_ALIASES}}
    for canonical, alias in FACTOR_ALIASES:
        if canonical in entry:
            out[canonical] = entry[canonical]
        elif alias in entry:
            out[canonical] = entry[alias]
    return out


def canonicalize_analysis(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of payload using canonical field names.

    Canonical keys win when both spellings are present. Values are not
    type-checked here; see analysis.parser for that.
    """
    aliases = {alias for _, alias in FIELD_ALIASES}
    out: Dict[str, Any] = {k: v for k, v in payload.items() if k not in aliases}
    for canonical, alias in FIELD_ALIASES:
        if canonical in payload:
            out[canonical] = payload[canonical]
        elif alias in payload:
            out[canonical] = payload[alias]
    factors = out.get("key_factors")
    if isinstance(factors, list):
        out["key_factors"] = [_canonicalize_factor(f) for f in factors]
    return out


def has_field(payload: Dict[str, Any], canonical: str) -> bool:
    """True when payload carries canonical or its legacy alias."""
    if canonical in payload:
        return True
    for name, alias in FIELD_ALIASES:
        if name == canonical:
            return alias in payload
    return False

