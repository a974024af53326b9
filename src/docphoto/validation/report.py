from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from docphoto.core.models import FaceData


@dataclass(frozen=True)
class ValidationCheck:
    """
    Result of a single validation check.
    """
    name: str
    passed: bool
    message: str
    note: str | None = None
    metrics: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationReport:
    """
    Ordered check results for one validation attempt, plus the face they were
    measured on (present only when exactly one face was found).
    """
    checks: dict[str, ValidationCheck] = field(default_factory=dict)
    face_data: Optional[FaceData] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks.values())

    @property
    def failed(self) -> list[ValidationCheck]:
        return [c for c in self.checks.values() if not c.passed]

    @classmethod
    def from_checks(cls, checks: list[ValidationCheck], face_data: Optional[FaceData] = None) -> "ValidationReport":
        return cls(checks={c.name: c for c in checks}, face_data=face_data)
