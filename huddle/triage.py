"""
Project classification for structured build requests.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol

from .workflow.workspace import ProjectBrief


@dataclass
class TriageResult:
    """What a build request asks for."""

    project_type: str
    requirements: list[str] = field(default_factory=list)
    matched_keywords: list[str] = field(default_factory=list)

    def to_brief(self) -> ProjectBrief:
        return ProjectBrief(
            name=f"{self.project_type} Project",
            type=self.project_type,
            requirements=list(self.requirements),
            status="planning",
        )


class Triager(Protocol):
    def classify(self, text: str) -> TriageResult: ...


class ProjectTriager:
    """Classifies build requests by keyword tables."""

    DEFAULT_TYPE = "website"
    DEFAULT_REQUIREMENT = "basic functionality"

    # Order matters: the first type with any keyword hit wins.
    PROJECT_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
        ("ecommerce", ("ecommerce", "e-commerce", "shop", "store", "cart", "product")),
        ("restaurant", ("restaurant", "menu", "reservation", "food")),
        ("blog", ("blog", "content", "posts", "articles")),
        ("dashboard", ("dashboard", "analytics", "admin", "metrics")),
        ("portfolio", ("portfolio", "showcase", "gallery", "resume")),
    )

    REQUIREMENT_PATTERNS: tuple[tuple[str, str], ...] = (
        (r"\buser|auth|login|registration|sign[ -]?up", "user authentication"),
        (r"payment|checkout|stripe", "payment processing"),
        (r"admin|dashboard|cms", "admin panel"),
        (r"responsive|mobile", "responsive design"),
        (r"search|filter", "search functionality"),
        (r"social|share|comment", "social features"),
    )

    def classify(self, text: str) -> TriageResult:
        lowered = text.lower()
        project_type = self.DEFAULT_TYPE
        matched: list[str] = []

        for candidate, keywords in self.PROJECT_TYPES:
            hits = [kw for kw in keywords if kw in lowered]
            if hits:
                project_type = candidate
                matched = hits
                break

        requirements = [
            tag for pattern, tag in self.REQUIREMENT_PATTERNS if re.search(pattern, lowered)
        ]
        return TriageResult(
            project_type=project_type,
            requirements=requirements or [self.DEFAULT_REQUIREMENT],
            matched_keywords=matched,
        )
