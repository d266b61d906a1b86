"""
Canonical data models.

- CanonicalEvent: the normalized event stored and indexed by the pipeline
- Cost variants: FreeCost, FixedCost, VariableCost
- Group models: GroupDefinition, ScheduleEntry, GroupItem
"""

from .event import (
    COST_VARIANTS,
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    CanonicalEvent,
    Cost,
    CostType,
    FixedCost,
    FreeCost,
    VariableCost,
)
from .group import GroupDefinition, GroupItem, GroupItemKind, ScheduleEntry

__all__ = [
    "COST_VARIANTS",
    "DEFAULT_CATEGORY",
    "DEFAULT_CURRENCY",
    "CanonicalEvent",
    "Cost",
    "CostType",
    "FixedCost",
    "FreeCost",
    "VariableCost",
    "GroupDefinition",
    "GroupItem",
    "GroupItemKind",
    "ScheduleEntry",
]
