"""
Output validation for candidate content.

Every candidate, from the baseline or the collaborator, goes through
`OutputValidator.validate` before it may be stored. Validation is
all-or-nothing: the candidate is accepted exactly as given or rejected
with a `SchemaViolation` naming the rule that failed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from .errors import SchemaViolation
from .models import ContentKindName
from .schemas import Plan3mV1, Plan6mV1, SessionCoachV1


logger = logging.getLogger(__name__)


SCHEMA_MODELS: dict[ContentKindName, type[BaseModel]] = {
    ContentKindName.PLAN6M: Plan6mV1,
    ContentKindName.PLAN3M: Plan3mV1,
    ContentKindName.SESSIONCOACH: SessionCoachV1,
}


@dataclass(frozen=True)
class AllowedReferences:
    """Theme and metric ids a candidate may mention in this run."""
    themes: frozenset[str] = field(default_factory=frozenset)
    metrics: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "themes", frozenset(self.themes))
        object.__setattr__(self, "metrics", frozenset(self.metrics))


class OutputValidator:
    """Checks candidates against their kind's schema and allowed references."""

    def validate(
        self,
        content: Any,
        kind: ContentKindName,
        allowed: AllowedReferences,
    ) -> dict[str, Any]:
        """
        Return `content` unchanged if it is valid for `kind`.

        Raises SchemaViolation with reason `schema` for structural problems
        and `reference_not_allowed` for ids outside `allowed`.
        """
        if not isinstance(content, dict):
            raise SchemaViolation("schema", f"{kind.value} content must be a JSON object")

        model = SCHEMA_MODELS[kind]
        try:
            parsed = model.model_validate(content, strict=True)
        except ValidationError as e:
            errors = e.errors(include_url=False)
            logger.debug(
                "Schema validation failed",
                extra={"kind": kind.value, "error_count": len(errors)},
            )
            first = errors[0]
            location = ".".join(str(part) for part in first["loc"]) or "<root>"
            raise SchemaViolation(
                "schema",
                f"{kind.value}: {location}: {first['msg']} ({len(errors)} error(s))",
            )

        refs = parsed.references()
        stray_themes = refs["themes"] - allowed.themes
        stray_metrics = refs["metrics"] - allowed.metrics
        if stray_themes or stray_metrics:
            raise SchemaViolation(
                "reference_not_allowed",
                f"{kind.value}: themes={sorted(stray_themes)} metrics={sorted(stray_metrics)} not allowed",
            )

        return content
