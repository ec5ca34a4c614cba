"""Offline approximation of an analysis, built from keyword matching.

Only used when the analysis service cannot be reached. The output has the
same canonical shape as a model result but always reads as a rough,
offline answer and never claims more than ``medium`` confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..domain.models import CONFIDENCE_LOW, CONFIDENCE_MEDIUM
from ..logging import get_logger

LOG = get_logger("analysis-heuristics")

SIGNAL_WORDS: Tuple[str, ...] = (
    "water", "salt", "sugar", "flour", "oil", "acid", "flavor", "extract",
    "starch", "syrup", "milk", "cream", "butter", "egg", "wheat", "soy",
    "corn", "rice", "vitamin", "sodium", "calcium", "potassium", "natural",
    "artificial", "modified", "hydrolyzed", "concentrate", "powder", "dried",
)

SWEETENER_KEYWORDS: Tuple[str, ...] = (
    "sugar", "fructose", "glucose", "corn syrup", "dextrose", "sucralose",
    "acesulfame", "aspartame", "honey", "molasses", "stevia",
)
PRESERVATIVE_KEYWORDS: Tuple[str, ...] = (
    "benzoate", "sorbate", "nitrite", "nitrate", "propionate", "sulfite",
    "bht", "bha", "tbhq",
)
EMULSIFIER_KEYWORDS: Tuple[str, ...] = (
    "lecithin", "gum", "carrageenan", "polysorbate", "mono-", "di-",
    "xanthan", "gellan", "pectin",
)
COLOR_KEYWORDS: Tuple[str, ...] = (
    "red 40", "yellow 5", "yellow 6", "blue 1", "caramel color", "annatto",
    "beta carotene",
)
NATURAL_KEYWORDS: Tuple[str, ...] = (
    "organic", "natural flavor", "sea salt", "cane sugar", "whole grain",
)

LONG_LIST_THRESHOLD = 15
SHORT_LIST_THRESHOLD = 5
CONVENIENCE_THRESHOLD = 10
MAX_FACTORS = 3

OFFLINE_SUFFIX = "(Offline - limited detail available.)"
OFFLINE_UNCERTAINTY = (
    "Can't determine exact quantities, how often you eat this, or how it fits into your day. "
    "This is a rough read based on the ingredient list alone."
)

NOT_INGREDIENTS_RESULT: Dict[str, Any] = {
    "judgment": "This doesn't look like an ingredient list. Paste what you see on the package.",
    "key_factors": [
        {
            "factor": "Nothing to go on",
            "explanation": "Without actual ingredients, there's no way to frame what kind of product this is.",
        }
    ],
    "tradeoffs": "Pasting real ingredients gives you clarity; skipping that step leaves you guessing.",
    "uncertainty": "Can't determine product type, purpose, or what kind of decision this represents.",
    "confidence": CONFIDENCE_LOW,
}


@dataclass(frozen=True)
class CategoryMatches:
    sweeteners: Tuple[str, ...]
    preservatives: Tuple[str, ...]
    emulsifiers: Tuple[str, ...]
    colors: Tuple[str, ...]
    natural: Tuple[str, ...]


def _matches(lower: str, keywords: Tuple[str, ...]) -> Tuple[str, ...]:
    return tuple(k for k in keywords if k in lower)


def looks_like_ingredients(text: str) -> bool:
    """Implausible only when both the vocabulary and the comma structure are missing."""
    lower = text.lower()
    signal_count = len(_matches(lower, SIGNAL_WORDS))
    comma_count = text.count(",")
    return signal_count >= 2 or comma_count >= 2


def estimate_ingredient_count(text: str) -> int:
    return text.count(",") + 1


def scan_categories(text: str) -> CategoryMatches:
    lower = text.lower()
    return CategoryMatches(
        sweeteners=_matches(lower, SWEETENER_KEYWORDS),
        preservatives=_matches(lower, PRESERVATIVE_KEYWORDS),
        emulsifiers=_matches(lower, EMULSIFIER_KEYWORDS),
        colors=_matches(lower, COLOR_KEYWORDS),
        natural=_matches(lower, NATURAL_KEYWORDS),
    )


def _factors(count: int, found: CategoryMatches) -> List[Dict[str, str]]:
    factors: List[Dict[str, str]] = []

    if count > LONG_LIST_THRESHOLD:
        factors.append({
            "factor": "Long ingredient list",
            "explanation": (
                f"Around {count} ingredients suggests this is built for convenience "
                "and shelf life rather than simplicity."
            ),
        })
    elif count <= SHORT_LIST_THRESHOLD:
        factors.append({
            "factor": "Short, simple list",
            "explanation": f"Only about {count} ingredients, so this looks like a relatively basic product.",
        })

    if len(found.sweeteners) > 1:
        factors.append({
            "factor": "Multiple sweetening agents",
            "explanation": "Using more than one sweetener often points to a product designed around taste and cost balance.",
        })
    elif found.sweeteners:
        factors.append({
            "factor": "Sweetness is central",
            "explanation": "A sweetener listed suggests taste is a primary feature of this product.",
        })

    if found.preservatives:
        factors.append({
            "factor": "Built to last on a shelf",
            "explanation": "Preservatives indicate this is designed for a longer shelf life.",
        })

    if found.emulsifiers:
        factors.append({
            "factor": "Texture is engineered",
            "explanation": "Stabilizers and emulsifiers suggest consistency and texture are priorities.",
        })

    if found.colors:
        factors.append({
            "factor": "Color is added for appeal",
            "explanation": "Added colors point to visual presentation being part of the product's design.",
        })

    if len(found.natural) >= 2:
        factors.append({
            "factor": "Positioned as natural",
            "explanation": "Terms like 'organic' or 'natural' suggest the product is marketed toward simpler preferences.",
        })

    return factors


def _tradeoff_sentence(count: int, found: CategoryMatches) -> str:
    gains: List[str] = []
    costs: List[str] = []
    if found.sweeteners:
        gains.append("taste")
    if found.preservatives:
        gains.append("shelf life")
    if found.emulsifiers:
        gains.append("consistent texture")
    if count <= SHORT_LIST_THRESHOLD:
        gains.append("simplicity")
    if count > CONVENIENCE_THRESHOLD:
        costs.append("simplicity")
    if found.preservatives or found.emulsifiers:
        costs.append("minimal ingredients")

    gain_text = " and ".join(gains[:2]) if gains else "convenience"
    cost_text = " and ".join(costs[:2]) if costs else "a shorter ingredient list"
    return f"You get {gain_text}; you give up {cost_text}."


def build_fallback_analysis(text: str) -> Dict[str, Any]:
    """Deterministic, schema-conforming offline analysis of ingredient text."""
    if not looks_like_ingredients(text):
        LOG.info("Fallback: input does not look like an ingredient list")
        return {
            **NOT_INGREDIENTS_RESULT,
            "key_factors": [dict(f) for f in NOT_INGREDIENTS_RESULT["key_factors"]],
        }

    count = estimate_ingredient_count(text)
    found = scan_categories(text)
    factors = _factors(count, found)
    if not factors:
        factors.append({
            "factor": "Standard product",
            "explanation": "Nothing stands out, so this looks like a conventional product.",
        })
    factors = factors[:MAX_FACTORS]

    confidence = CONFIDENCE_MEDIUM if len(factors) >= MAX_FACTORS else CONFIDENCE_LOW
    product_type = (
        "convenience-oriented product" if count > CONVENIENCE_THRESHOLD else "relatively straightforward product"
    )
    LOG.debug("Fallback: %d ingredient(s), %d factor(s), confidence=%s", count, len(factors), confidence)
    return {
        "judgment": f"This looks like a {product_type}. {OFFLINE_SUFFIX}",
        "key_factors": factors,
        "tradeoffs": _tradeoff_sentence(count, found),
        "uncertainty": OFFLINE_UNCERTAINTY,
        "confidence": confidence,
    }
