# Overview: Per-shop order status flow: parsing, validation, transition queries, and cache.

"""
Order status flow engine.

A flow is a directed graph of integer status codes stored on the shop as
JSON. It is validated on load, interpreted as data, and cached per shop
until the shop is updated.

JSON shape:
    {"statuses": [{"value": 1, "label": "Pending", "type": "warning",
                   "isFinal": false,
                   "actions": [{"name": "Accept", "nextStatus": 2,
                                "nextStatusLabel": "Accepted"}]}]}
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any

from ..errors import InvalidInput


@dataclass(frozen=True)
class StatusAction:
    name: str
    next_status: int
    next_status_label: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "nextStatus": self.next_status,
            "nextStatusLabel": self.next_status_label,
        }


@dataclass(frozen=True)
class FlowStatus:
    value: int
    label: str
    type: str
    is_final: bool
    actions: tuple[StatusAction, ...] = ()

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "label": self.label,
            "type": self.type,
            "isFinal": self.is_final,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass(frozen=True)
class OrderStatusFlow:
    statuses: tuple[FlowStatus, ...]
    _index: dict[int, FlowStatus] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        self._index.update({s.value: s for s in self.statuses})

    def get(self, value: int) -> FlowStatus | None:
        return self._index.get(value)

    def label_for(self, value: int) -> str | None:
        status = self.get(value)
        return status.label if status else None

    def to_dict(self) -> dict:
        return {"statuses": [s.to_dict() for s in self.statuses]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def can_transition(from_status: int, to_status: int, flow: OrderStatusFlow) -> bool:
    state = flow.get(from_status)
    if state is None or state.is_final or from_status == to_status:
        return False
    return any(action.next_status == to_status for action in state.actions)


def is_final(status: int, flow: OrderStatusFlow) -> bool:
    state = flow.get(status)
    return state is not None and state.is_final


def unfinished_statuses(flow: OrderStatusFlow) -> set[int]:
    return {s.value for s in flow.statuses if not s.is_final}


def _require_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{where} must be an integer")
    return value


def _require_text(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{where} must be a non-empty string")
    return value


def parse_flow(raw: Any) -> OrderStatusFlow:
    """
    Build a flow from decoded JSON (or a JSON string) and validate it.

    Rules:
    - at least one status; values are unique integers
    - label is a non-empty string; type is a string; isFinal is a bool
    - final statuses declare no actions
    - every action targets a status present in the flow, other than its own
    Reachability is not required and cycles are allowed.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidInput("order status flow is not valid JSON")

    if not isinstance(raw, dict) or not isinstance(raw.get("statuses"), list):
        raise InvalidInput("order status flow must be an object with a statuses list")
    if not raw["statuses"]:
        raise InvalidInput("order status flow must declare at least one status")

    statuses: list[FlowStatus] = []
    seen: set[int] = set()
    for i, item in enumerate(raw["statuses"]):
        where = f"statuses[{i}]"
        if not isinstance(item, dict):
            raise InvalidInput(f"{where} must be an object")
        value = _require_int(item.get("value"), f"{where}.value")
        if value in seen:
            raise InvalidInput(f"duplicate status value {value}")
        seen.add(value)

        label = _require_text(item.get("label"), f"{where}.label")
        status_type = item.get("type", "")
        if not isinstance(status_type, str):
            raise InvalidInput(f"{where}.type must be a string")
        final = item.get("isFinal", False)
        if not isinstance(final, bool):
            raise InvalidInput(f"{where}.isFinal must be a boolean")

        raw_actions = item.get("actions") or []
        if not isinstance(raw_actions, list):
            raise InvalidInput(f"{where}.actions must be a list")
        if final and raw_actions:
            raise InvalidInput(f"final status {value} cannot declare actions")

        actions = []
        for j, action in enumerate(raw_actions):
            a_where = f"{where}.actions[{j}]"
            if not isinstance(action, dict):
                raise InvalidInput(f"{a_where} must be an object")
            next_status = _require_int(action.get("nextStatus"), f"{a_where}.nextStatus")
            if next_status == value:
                raise InvalidInput(f"status {value} cannot transition to itself")
            next_label = action.get("nextStatusLabel", "")
            if not isinstance(next_label, str):
                raise InvalidInput(f"{a_where}.nextStatusLabel must be a string")
            actions.append(StatusAction(
                name=_require_text(action.get("name"), f"{a_where}.name"),
                next_status=next_status,
                next_status_label=next_label,
            ))

        statuses.append(FlowStatus(
            value=value,
            label=label,
            type=status_type,
            is_final=final,
            actions=tuple(actions),
        ))

    for status in statuses:
        for action in status.actions:
            if action.next_status not in seen:
                raise InvalidInput(
                    f"status {status.value} has an action to unknown status {action.next_status}"
                )

    return OrderStatusFlow(statuses=tuple(statuses))


DEFAULT_FLOW_DATA = {
    "statuses": [
        {
            "value": 1,
            "label": "Pending",
            "type": "warning",
            "isFinal": False,
            "actions": [
                {"name": "Accept", "nextStatus": 2, "nextStatusLabel": "Accepted"},
                {"name": "Reject", "nextStatus": 3, "nextStatusLabel": "Rejected"},
            ],
        },
        {
            "value": 2,
            "label": "Accepted",
            "type": "primary",
            "isFinal": False,
            "actions": [
                {"name": "Ship", "nextStatus": 4, "nextStatusLabel": "Shipped"},
                {"name": "Cancel", "nextStatus": -1, "nextStatusLabel": "Canceled"},
            ],
        },
        {
            "value": 4,
            "label": "Shipped",
            "type": "info",
            "isFinal": False,
            "actions": [
                {"name": "Complete", "nextStatus": 10, "nextStatusLabel": "Complete"},
            ],
        },
        {"value": 3, "label": "Rejected", "type": "danger", "isFinal": True, "actions": []},
        {"value": 10, "label": "Complete", "type": "success", "isFinal": True, "actions": []},
        {"value": -1, "label": "Canceled", "type": "info", "isFinal": True, "actions": []},
    ]
}


def default_flow() -> OrderStatusFlow:
    return parse_flow(DEFAULT_FLOW_DATA)


class FlowCache:
    """
    Parsed flows keyed by shop id.

    Each entry remembers the JSON it was parsed from; a shop row carrying
    different JSON is re-parsed, so an entry written from an older row
    never outlives the row it came from.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._flows: dict[int, tuple[str | None, OrderStatusFlow]] = {}

    def get(self, shop) -> OrderStatusFlow:
        raw = shop.order_status_flow or None
        with self._lock:
            cached = self._flows.get(shop.id)
        if cached is not None and cached[0] == raw:
            return cached[1]
        flow = parse_flow(raw) if raw else default_flow()
        with self._lock:
            self._flows[shop.id] = (raw, flow)
        return flow

    def invalidate(self, shop_id: int) -> None:
        with self._lock:
            self._flows.pop(shop_id, None)

    def clear(self) -> None:
        with self._lock:
            self._flows.clear()


flow_cache = FlowCache()


def flow_for_shop(shop) -> OrderStatusFlow:
    return flow_cache.get(shop)
