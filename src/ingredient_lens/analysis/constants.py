from __future__ import annotations

from typing import Tuple

from ..domain.models import CONFIDENCE_CHOICES

MIN_INPUT_LENGTH = 10
MAX_INPUT_LENGTH = 5000

# History pages never exceed this many records.
MAX_HISTORY_ITEMS = 50

# Bearer tokens shorter than this are rejected before verification.
MIN_TOKEN_LENGTH = 10

# Remote model invocation: 1 attempt + MODEL_RETRIES retries, backoff base * 2**n.
MODEL_RETRIES = 2
MODEL_BACKOFF_BASE_SECONDS = 1.0

REQUIRED_FIELDS: Tuple[str, ...] = (
    "judgment",
    "key_factors",
    "tradeoffs",
    "uncertainty",
    "confidence",
)

__all__ = [
    "CONFIDENCE_CHOICES",
    "MAX_HISTORY_ITEMS",
    "MAX_INPUT_LENGTH",
    "MIN_INPUT_LENGTH",
    "MIN_TOKEN_LENGTH",
    "MODEL_BACKOFF_BASE_SECONDS",
    "MODEL_RETRIES",
    "REQUIRED_FIELDS",
]
