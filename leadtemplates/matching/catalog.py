"""
Template catalog interface and the in-memory implementation.

Persistence belongs to the host application; it plugs in by implementing
``TemplateCatalog``. Every write goes through ``validate_template``.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterable, List, Optional

from leadtemplates.exceptions import TemplateValidationError
from leadtemplates.matching.condition_evaluator import KNOWN_VARIABLES, operand_error
from leadtemplates.matching.models import (
    Channel,
    Template,
    TemplateCategory,
    TemplateStatus,
)
from leadtemplates.utils.logging import get_logger

logger = get_logger(__name__)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_template(template: Template) -> None:
    """
    Reject structurally invalid templates.

    Raises:
        TemplateValidationError: describing the first problem found
    """
    if not template.id or not str(template.id).strip():
        raise TemplateValidationError("Template id must not be empty")
    if not template.name or not template.name.strip():
        raise TemplateValidationError(f"Template {template.id} has no name")
    if not template.content or not template.content.strip():
        raise TemplateValidationError(f"Template {template.id} has no content")
    if template.variables is None or template.conditions is None:
        raise TemplateValidationError(
            f"Template {template.id} must declare variables and conditions lists"
        )
    if not _is_number(template.priority) or not 1 <= template.priority <= 10:
        raise TemplateValidationError(
            f"Template {template.id} priority must be a number in 1-10, "
            f"got {template.priority!r}"
        )

    for condition in template.conditions:
        if not _is_number(condition.weight) or not 0 <= condition.weight <= 100:
            raise TemplateValidationError(
                f"Condition {condition.id} weight must be a number in 0-100, "
                f"got {condition.weight!r}"
            )
        if condition.variable not in KNOWN_VARIABLES:
            raise TemplateValidationError(
                f"Condition {condition.id} references unknown variable "
                f"'{condition.variable}'"
            )
        problem = operand_error(condition)
        if problem:
            raise TemplateValidationError(f"Condition {condition.id}: {problem}")


@dataclass
class TemplateFilter:
    """Criteria for ``TemplateCatalog.list``; ``None`` fields match anything."""

    status: Optional[TemplateStatus] = None
    category: Optional[TemplateCategory] = None
    channel: Optional[Channel] = None
    is_default: Optional[bool] = None
    exclude_ids: List[str] = field(default_factory=list)

    def matches(self, template: Template) -> bool:
        if self.status is not None and template.status != self.status:
            return False
        if self.category is not None and template.category != self.category:
            return False
        if self.channel is not None and template.channel != self.channel:
            return False
        if self.is_default is not None and template.is_default != self.is_default:
            return False
        return template.id not in self.exclude_ids

    def cache_key(self) -> tuple:
        return (
            self.status,
            self.category,
            self.channel,
            self.is_default,
            tuple(sorted(self.exclude_ids)),
        )


class TemplateCatalog(ABC):
    """Key-value store of templates."""

    @abstractmethod
    def get(self, template_id: str) -> Optional[Template]:
        """Return the template with ``template_id``, or ``None``."""

    @abstractmethod
    def list(self, template_filter: Optional[TemplateFilter] = None) -> List[Template]:
        """Return every template matching ``template_filter``."""

    @abstractmethod
    def upsert(self, template: Template) -> None:
        """Insert or replace a template."""

    @abstractmethod
    def delete(self, template_id: str) -> None:
        """Remove a template; unknown ids are ignored."""


class InMemoryTemplateCatalog(TemplateCatalog):
    """Dictionary-backed catalog that hands out copies of its templates."""

    def __init__(self, templates: Optional[Iterable[Template]] = None):
        self._templates: Dict[str, Template] = {}
        self._lock = Lock()
        self.logger = get_logger(f"{__name__}.InMemoryTemplateCatalog")
        for template in templates or []:
            self.upsert(template)

    def get(self, template_id: str) -> Optional[Template]:
        template = self._templates.get(template_id)
        return copy.deepcopy(template) if template else None

    def list(self, template_filter: Optional[TemplateFilter] = None) -> List[Template]:
        template_filter = template_filter or TemplateFilter()
        with self._lock:
            templates = list(self._templates.values())
        return [copy.deepcopy(t) for t in templates if template_filter.matches(t)]

    def upsert(self, template: Template) -> None:
        validate_template(template)
        with self._lock:
            if template.is_default and template.status is TemplateStatus.ACTIVE:
                for other in self._templates.values():
                    if (
                        other.id != template.id
                        and other.is_default
                        and other.status is TemplateStatus.ACTIVE
                        and other.category == template.category
                        and other.channel == template.channel
                    ):
                        raise TemplateValidationError(
                            f"Template {other.id} is already the active default for "
                            f"{template.category.value}/{template.channel.value}"
                        )
            self._templates[template.id] = copy.deepcopy(template)
        self.logger.debug(f"Stored template {template.id}")

    def delete(self, template_id: str) -> None:
        with self._lock:
            removed = self._templates.pop(template_id, None)
        if removed:
            self.logger.debug(f"Deleted template {template_id}")

    def __len__(self) -> int:
        return len(self._templates)
