"""Template registry: in-memory index of loaded insight templates."""

from __future__ import annotations

import logging

from insightloop.core.templates.models import DEFAULT_CATEGORY, InsightTemplate

logger = logging.getLogger(__name__)


class TemplateNotFoundError(Exception):
    """Raised when no template (not even the default) covers a category."""


class TemplateRegistry:
    """In-memory registry of insight templates, indexed by id and category."""

    def __init__(self) -> None:
        self._templates: dict[str, InsightTemplate] = {}
        self._by_category: dict[str, str] = {}

    def register(self, template: InsightTemplate) -> None:
        """Add a template to all indexes."""
        if template.id in self._templates:
            raise ValueError(f"Duplicate template id registered: {template.id!r}")
        category = template.category.upper() if template.category != DEFAULT_CATEGORY else DEFAULT_CATEGORY
        if category in self._by_category:
            raise ValueError(
                f"Category {category!r} already covered by template "
                f"{self._by_category[category]!r}"
            )
        self._templates[template.id] = template
        self._by_category[category] = template.id

    def get(self, template_id: str) -> InsightTemplate | None:
        """Look up a template by ID."""
        return self._templates.get(template_id)

    def for_category(self, category: str) -> InsightTemplate:
        """Return the template for ``category``, falling back to the default template."""
        template_id = self._by_category.get(category.upper())
        if template_id is None:
            template_id = self._by_category.get(DEFAULT_CATEGORY)
            if template_id is None:
                raise TemplateNotFoundError(
                    f"No template for category {category!r} and no default template"
                )
            logger.debug("Using default template for category %s", category)
        return self._templates[template_id]

    def all(self) -> list[InsightTemplate]:
        """Return all registered templates."""
        return list(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)
