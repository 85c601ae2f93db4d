"""
Target-vs-actual rebalancing for a point-in-time set of holdings.

Nothing here raises on bad allocations: a target total away from 100% is
reported through `is_valid` and the actions are still computed so the caller
can show what the current targets would imply.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Iterable

import pandas as pd

logger = logging.getLogger(__name__)

ALLOCATION_TOLERANCE = 0.01
ACTION_THRESHOLD = 0.01
UNNAMED = "Unnamed"


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass
class Asset:
    name: str = ""
    current_value: float = 0.0
    target_allocation_percent: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def display_name(self) -> str:
        return self.name or UNNAMED


@dataclass(frozen=True)
class RebalanceAction:
    asset: Asset
    target_value: float
    delta: float
    action: Action


@dataclass(frozen=True)
class RebalanceSummary:
    total_value: float
    total_allocation: float
    is_valid: bool
    actions: tuple[RebalanceAction, ...]
    current_distribution: dict[str, float]
    target_distribution: dict[str, float]


def classify(delta: float, threshold: float = ACTION_THRESHOLD) -> Action:
    if delta > threshold:
        return Action.BUY
    if delta < -threshold:
        return Action.SELL
    return Action.HOLD


def rebalance(assets: Iterable[Asset]) -> RebalanceSummary:
    assets = list(assets)
    total_value = sum(a.current_value for a in assets)
    total_allocation = sum(a.target_allocation_percent for a in assets)
    is_valid = abs(total_allocation - 100.0) < ALLOCATION_TOLERANCE
    if not is_valid:
        logger.debug("target allocations sum to %.4f%%, not 100%%", total_allocation)

    actions = []
    for a in assets:
        target_value = total_value * a.target_allocation_percent / 100.0
        delta = target_value - a.current_value
        actions.append(RebalanceAction(a, target_value, delta, classify(delta)))

    # same-named assets are merged so the pie slices still add up
    current: dict[str, float] = {}
    for a in assets:
        if a.current_value > 0:
            current[a.display_name] = current.get(a.display_name, 0.0) + a.current_value

    target: dict[str, float] = {}
    if total_value > 0:
        for ra in actions:
            if ra.asset.target_allocation_percent > 0:
                name = ra.asset.display_name
                target[name] = target.get(name, 0.0) + ra.target_value

    return RebalanceSummary(
        total_value=total_value,
        total_allocation=total_allocation,
        is_valid=is_valid,
        actions=tuple(actions),
        current_distribution=current,
        target_distribution=target,
    )


class Portfolio:
    """Editable, insertion-ordered collection of assets. Derived values are recomputed on read."""

    def __init__(self, assets: Iterable[Asset] = ()):
        self.assets: list[Asset] = list(assets)

    @classmethod
    def default(cls) -> Portfolio:
        return cls(
            [
                Asset("Global Equities", 50000.0, 40.0, id="1"),
                Asset("Green Bonds", 30000.0, 30.0, id="2"),
                Asset("Real Estate", 20000.0, 30.0, id="3"),
            ]
        )

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self):
        return iter(self.assets)

    def _find(self, asset_id: str) -> int:
        for i, a in enumerate(self.assets):
            if a.id == asset_id:
                return i
        raise KeyError(asset_id)

    def get(self, asset_id: str) -> Asset:
        return self.assets[self._find(asset_id)]

    def add_asset(
        self,
        name: str = "",
        current_value: float = 0.0,
        target_allocation_percent: float = 0.0,
    ) -> Asset:
        asset = Asset(name, float(current_value), float(target_allocation_percent))
        self.assets.append(asset)
        return asset

    def remove_asset(self, asset_id: str) -> Asset:
        return self.assets.pop(self._find(asset_id))

    def update_asset(self, asset_id: str, **changes) -> Asset:
        editable = {f.name for f in fields(Asset)} - {"id"}
        unknown = set(changes) - editable
        if unknown:
            raise KeyError(f"unknown asset field(s): {sorted(unknown)}")
        asset = self.get(asset_id)
        for name, value in changes.items():
            setattr(asset, name, value if name == "name" else float(value))
        return asset

    def summary(self) -> RebalanceSummary:
        return rebalance(self.assets)

    @property
    def total_value(self) -> float:
        return self.summary().total_value

    @property
    def total_allocation(self) -> float:
        return self.summary().total_allocation

    @property
    def is_valid(self) -> bool:
        return self.summary().is_valid

    @property
    def actions(self) -> tuple[RebalanceAction, ...]:
        return self.summary().actions

    @property
    def current_distribution(self) -> dict[str, float]:
        return self.summary().current_distribution

    @property
    def target_distribution(self) -> dict[str, float]:
        return self.summary().target_distribution

    def to_frame(self) -> pd.DataFrame:
        """Rebalance table: one row per asset in insertion order."""
        rows = [
            {
                "id": ra.asset.id,
                "name": ra.asset.name,
                "current_value": ra.asset.current_value,
                "target_allocation_percent": ra.asset.target_allocation_percent,
                "target_value": ra.target_value,
                "delta": ra.delta,
                "action": ra.action.value,
            }
            for ra in self.actions
        ]
        columns = [
            "id",
            "name",
            "current_value",
            "target_allocation_percent",
            "target_value",
            "delta",
            "action",
        ]
        return pd.DataFrame(rows, columns=columns)
