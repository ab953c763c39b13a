"""
Order status flow tests.

Verifies:
- The default flow's transitions and final states
- Flow validation rejects malformed graphs
- Custom flows with arbitrary integer codes
- The per-shop cache is dropped when the shop's flow is replaced
"""

import json
from types import SimpleNamespace

import pytest

from orderease.errors import InvalidInput
from orderease.services import flow_service, shop_service
from orderease.services.flow_service import (
    can_transition,
    default_flow,
    is_final,
    parse_flow,
    unfinished_statuses,
)


def _flow(*statuses):
    return {"statuses": list(statuses)}


def _status(value, *, final=False, actions=()):
    return {
        "value": value,
        "label": f"S{value}",
        "type": "info",
        "isFinal": final,
        "actions": [
            {"name": f"to {target}", "nextStatus": target, "nextStatusLabel": f"S{target}"}
            for target in actions
        ],
    }


class TestDefaultFlow:

    def test_pending_can_be_accepted_or_rejected(self):
        flow = default_flow()
        assert can_transition(1, 2, flow)
        assert can_transition(1, 3, flow)
        assert not can_transition(1, 10, flow)

    def test_accepted_can_ship_or_cancel(self):
        flow = default_flow()
        assert can_transition(2, 4, flow)
        assert can_transition(2, -1, flow)
        assert not can_transition(2, 1, flow)

    def test_final_states_have_no_moves(self):
        flow = default_flow()
        for final in (3, 10, -1):
            assert is_final(final, flow)
            assert not can_transition(final, 1, flow)

    def test_unknown_status_cannot_move(self):
        assert not can_transition(99, 1, default_flow())
        assert not is_final(99, default_flow())

    def test_unfinished_statuses(self):
        assert unfinished_statuses(default_flow()) == {1, 2, 4}

    def test_labels(self):
        flow = default_flow()
        assert flow.label_for(1) == "Pending"
        assert flow.label_for(-1) == "Canceled"
        assert flow.label_for(42) is None

    def test_json_round_trip_keeps_wire_names(self):
        data = json.loads(default_flow().to_json())
        pending = data["statuses"][0]
        assert pending["isFinal"] is False
        assert pending["actions"][0]["nextStatus"] == 2
        assert parse_flow(data) == default_flow()


class TestFlowValidation:

    def test_accepts_json_string(self):
        flow = parse_flow(json.dumps(_flow(_status(1, actions=[2]), _status(2, final=True))))
        assert can_transition(1, 2, flow)

    def test_custom_codes_are_allowed(self):
        flow = parse_flow(_flow(
            _status(100, actions=[200, 300]),
            _status(200, actions=[100]),
            _status(300, final=True),
        ))
        assert can_transition(100, 300, flow)
        assert can_transition(200, 100, flow)
        assert unfinished_statuses(flow) == {100, 200}

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "not json",
            {},
            {"statuses": []},
            {"statuses": "nope"},
            _flow(_status(1), _status(1)),
            _flow(_status(1, final=True, actions=[2]), _status(2)),
            _flow(_status(1, actions=[7])),
            _flow(_status(1, actions=[1])),
            _flow({"value": "1", "label": "x", "isFinal": False}),
            _flow({"value": 1, "label": "", "isFinal": False}),
            _flow({"value": 1, "label": "x", "isFinal": "no"}),
        ],
    )
    def test_rejects_malformed_flow(self, raw):
        with pytest.raises(InvalidInput):
            parse_flow(raw)


class TestFlowCache:

    def test_replacing_flow_invalidates_cache(self, db_session, shop):
        before = flow_service.flow_for_shop(shop)
        assert can_transition(1, 2, before)

        shop_service.replace_flow(shop.id, _flow(_status(1, actions=[5]), _status(5, final=True)))
        after = shop_service.get_flow(shop.id)

        assert can_transition(1, 5, after)
        assert not can_transition(1, 2, after)

    def test_invalid_flow_is_not_stored(self, db_session, shop):
        with pytest.raises(InvalidInput):
            shop_service.replace_flow(shop.id, _flow(_status(1, actions=[9])))
        assert shop_service.get_flow(shop.id) == default_flow()

    def test_late_write_from_old_row_does_not_stick(self, db_session, shop):
        old_row = SimpleNamespace(id=shop.id, order_status_flow=shop.order_status_flow)

        shop_service.replace_flow(shop.id, _flow(_status(1, actions=[99]), _status(99, final=True)))
        # A reader that loaded the shop before the replace finishes afterwards
        flow_service.flow_cache.get(old_row)

        current = shop_service.get_flow(shop.id)
        assert current.get(99) is not None
        assert can_transition(1, 99, current)
