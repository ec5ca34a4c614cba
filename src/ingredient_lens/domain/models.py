from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .normalize import canonicalize_analysis

CONFIDENCE_LOW = "low"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_HIGH = "high"

CONFIDENCE_CHOICES: Tuple[str, ...] = (
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    CONFIDENCE_HIGH,
)

SOURCE_REMOTE = "remote"
SOURCE_OFFLINE = "offline"


@dataclass(frozen=True)
class KeyFactor:
    factor: str
    explanation: str

    def as_dict(self) -> Dict[str, str]:
        return {"factor": self.factor, "explanation": self.explanation}


@dataclass(frozen=True)
class AnalysisRecord:
    """One analysis result; never mutated after creation."""

    id: Optional[str]
    owner_id: Optional[str]
    input_text: str
    judgment: str
    key_factors: Tuple[KeyFactor, ...]
    tradeoffs: str
    uncertainty: str
    confidence: str
    created_at: Optional[str] = None
    source: str = SOURCE_REMOTE
    warning: Optional[str] = field(default=None, compare=False)

    @property
    def offline(self) -> bool:
        return self.source == SOURCE_OFFLINE

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "owner_id": self.owner_id,
            "input_text": self.input_text,
            "judgment": self.judgment,
            "key_factors": [kf.as_dict() for kf in self.key_factors],
            "tradeoffs": self.tradeoffs,
            "uncertainty": self.uncertainty,
            "confidence": self.confidence,
            "created_at": self.created_at,
            "source": self.source,
        }
        if self.warning:
            out["warning"] = self.warning
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRecord":
        """Build a record from either field-naming scheme.

        The payload is expected to have passed response validation; this only
        reshapes it.
        """
        canon = canonicalize_analysis(data)
        factors = tuple(
            KeyFactor(factor=str(kf.get("factor") or ""), explanation=str(kf.get("explanation") or ""))
            for kf in (canon.get("key_factors") or [])
            if isinstance(kf, dict)
        )
        return cls(
            id=canon.get("id"),
            owner_id=canon.get("owner_id") or canon.get("user_id"),
            input_text=str(canon.get("input_text") or ""),
            judgment=str(canon.get("judgment") or ""),
            key_factors=factors,
            tradeoffs=str(canon.get("tradeoffs") or ""),
            uncertainty=str(canon.get("uncertainty") or ""),
            confidence=str(canon.get("confidence") or CONFIDENCE_LOW),
            created_at=canon.get("created_at"),
            source=canon.get("source") or SOURCE_REMOTE,
            warning=canon.get("warning"),
        )
