"""Deletion eligibility for source items."""

from __future__ import annotations

from dataclasses import dataclass

from ..core.models import Route, RouteAction
from ..core.results import TaskResult


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Whether the source item may be deleted, and why."""

    delete: bool
    reason: str


def decide(
    route: Route,
    save_succeeded: bool,
    permissions: TaskResult | None,
) -> GateDecision:
    """Decide whether the item handled under ``route`` may be deleted.

    ``permissions`` is ``None`` when reconciliation did not run.
    """
    if route.action is RouteAction.DELETE:
        return GateDecision(True, "route action is delete")
    if not save_succeeded:
        return GateDecision(False, "save failed")
    if not route.apply_permissions:
        return GateDecision(True, "saved; route does not apply permissions")
    if permissions is None:
        return GateDecision(False, "permissions required but not applied")
    if not permissions.success:
        return GateDecision(False, "permission reconciliation failed")
    return GateDecision(True, "saved and permissions applied")


__all__ = ["GateDecision", "decide"]
