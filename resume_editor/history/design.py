"""Single-level design customization history.

Design changes are coarse and infrequent, so an assignment only remembers
the customization it replaced. ``undo`` swaps the two; ``revert`` clears both.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from typing_extensions import Protocol, runtime_checkable

from ..errors import DesignHistoryError
from .versions import make_id, utc_now_iso


@dataclass(frozen=True)
class DesignCustomization:
    id: str
    color_scheme: Dict[str, str] = field(default_factory=dict)
    font_family: Dict[str, str] = field(default_factory=dict)
    template_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def create(
        cls,
        color_scheme: Optional[Dict[str, str]] = None,
        font_family: Optional[Dict[str, str]] = None,
        template_id: Optional[str] = None,
    ) -> "DesignCustomization":
        return cls(
            id=make_id("cust"),
            color_scheme=dict(color_scheme or {}),
            font_family=dict(font_family or {}),
            template_id=template_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "color_scheme": dict(self.color_scheme),
            "font_family": dict(self.font_family),
            "template_id": self.template_id,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class DesignAssignment:
    user_id: str
    template_id: Optional[str] = None
    customization_id: Optional[str] = None
    previous_customization_id: Optional[str] = None

    @property
    def can_undo(self) -> bool:
        return self.previous_customization_id is not None

    def customize(self, customization_id: str, template_id: Optional[str] = None) -> "DesignAssignment":
        """Apply a new customization, remembering only the one it replaces."""
        return replace(
            self,
            template_id=template_id or self.template_id,
            customization_id=customization_id,
            previous_customization_id=self.customization_id,
        )

    def undo(self) -> "DesignAssignment":
        if self.previous_customization_id is None:
            raise DesignHistoryError()
        return replace(
            self,
            customization_id=self.previous_customization_id,
            previous_customization_id=self.customization_id,
        )

    def revert(self) -> "DesignAssignment":
        return replace(self, customization_id=None, previous_customization_id=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "template_id": self.template_id,
            "customization_id": self.customization_id,
            "previous_customization_id": self.previous_customization_id,
        }


@runtime_checkable
class DesignStore(Protocol):
    async def get_assignment(self, user_id: str) -> DesignAssignment: ...

    async def save_assignment(self, assignment: DesignAssignment) -> None: ...

    async def save_customization(self, customization: DesignCustomization) -> None: ...

    async def get_customization(self, customization_id: str) -> Optional[DesignCustomization]: ...


class InMemoryDesignStore:
    def __init__(self) -> None:
        self._assignments: Dict[str, DesignAssignment] = {}
        self._customizations: Dict[str, DesignCustomization] = {}

    async def get_assignment(self, user_id: str) -> DesignAssignment:
        return self._assignments.get(user_id, DesignAssignment(user_id=user_id))

    async def save_assignment(self, assignment: DesignAssignment) -> None:
        self._assignments[assignment.user_id] = assignment

    async def save_customization(self, customization: DesignCustomization) -> None:
        self._customizations[customization.id] = copy.deepcopy(customization)

    async def get_customization(self, customization_id: str) -> Optional[DesignCustomization]:
        customization = self._customizations.get(customization_id)
        return copy.deepcopy(customization) if customization else None
