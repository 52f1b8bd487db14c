from homecentral.services.tool_payloads import (
    detect_version,
    upgrade_to_latest,
    validate_and_coerce_tool_payload,
)
from homecentral.services.tool_payloads.finish_decisions import (
    FinishDecisionsV1,
    FinishDecisionsV2,
    migrate_v1_to_v2,
    migrate_v2_to_v3,
)


def test_non_object_payload_is_rejected():
    for bad in (None, [], "x", 3):
        result = validate_and_coerce_tool_payload("punchlist", bad)
        assert result.valid is False
        assert result.reason == "payload_not_object"


def test_unknown_tool_payload_passes_through():
    result = validate_and_coerce_tool_payload("future_tool", {"a": 1})
    assert result.valid is True
    assert result.payload == {"a": 1}


def test_punchlist_missing_items_is_reset():
    result = validate_and_coerce_tool_payload("punchlist", {"items": "oops", "extra": True})
    assert result.payload["items"] == []
    assert result.payload["nextItemNumber"] == 1
    assert result.payload["version"] == 3
    assert result.payload["extra"] is True


def test_punchlist_next_item_number_stays_ahead():
    payload = {
        "version": 3,
        "items": [{"id": "a", "itemNumber": 4}, {"id": "b", "itemNumber": 9}, "junk"],
        "nextItemNumber": 2,
    }
    result = validate_and_coerce_tool_payload("punchlist", payload)
    assert result.payload["nextItemNumber"] == 10
    # Items are kept as sent, junk included.
    assert len(result.payload["items"]) == 3


def test_punchlist_valid_counter_is_untouched():
    payload = {"items": [{"itemNumber": 1}], "nextItemNumber": 7}
    assert validate_and_coerce_tool_payload("punchlist", payload).payload["nextItemNumber"] == 7


def test_before_you_sign_contractors_coerced():
    result = validate_and_coerce_tool_payload("before_you_sign", {"contractors": None})
    assert result.payload["contractors"] == []
    assert result.payload["version"] == 1

    kept = {"contractors": [{"name": "Aloha Builders"}], "version": 1}
    assert validate_and_coerce_tool_payload("before_you_sign", kept).payload == kept


def test_mood_boards_fills_defaults_and_keeps_unknown_fields():
    raw = {
        "version": 7,
        "boards": [
            {"name": "Kitchen", "ideas": [{"name": 42, "custom": "x"}, "not-an-idea"], "pinned": True},
            "junk",
        ],
    }
    payload = validate_and_coerce_tool_payload("mood_boards", raw).payload
    assert payload["version"] == 1
    assert len(payload["boards"]) == 1
    board = payload["boards"][0]
    assert board["id"].startswith("board_")
    assert board["pinned"] is True
    assert len(board["ideas"]) == 1
    idea = board["ideas"][0]
    assert idea["name"] == "Untitled"
    assert idea["custom"] == "x"
    assert idea["images"] == []
    assert idea["id"].startswith("idea_")


def test_detect_version():
    assert detect_version({"version": 1, "items": []}) == 1
    assert detect_version({"version": 2}) == 2
    assert detect_version({"version": 3}) == 3
    assert detect_version({"version": 9}) == 3
    assert detect_version({"items": []}) == 1
    assert detect_version({"items": [], "rooms": []}) == 3
    assert detect_version({}) == 3
    assert detect_version({"version": True, "items": []}) == 1


def _v1_payload():
    return {
        "version": 1,
        "items": [
            {
                "id": "item-1",
                "room": "Kitchen",
                "category": "Countertop",
                "name": "Quartz",
                "specs": "3cm",
                "where": "Home Depot",
                "status": "final",
                "links": [{"id": "l1", "url": "https://example.com/q"}, {"url": ""}],
                "notes": "Check lead time",
                "createdAt": "2024-01-01T00:00:00.000Z",
                "updatedAt": "2024-01-02T00:00:00.000Z",
            },
            {
                "id": "item-2",
                "room": "Kitchen",
                "category": "Countertop",
                "name": "Granite",
                "status": "deciding",
            },
            {"id": "item-3", "room": "", "category": "Paint", "name": "White"},
        ],
    }


def test_v1_to_v2_groups_by_room_and_category():
    v2 = migrate_v1_to_v2(FinishDecisionsV1.model_validate(_v1_payload()))
    assert [room.name for room in v2.rooms] == ["Kitchen", "Other"]
    assert len(v2.decisions) == 2
    countertop = next(d for d in v2.decisions if d.category == "Countertop")
    # First item in the category decides the status.
    assert countertop.status == "decided"
    assert [o.id for o in v2.options if o.decision_id == countertop.id] == ["item-1", "item-2"]


def test_v2_to_v3_nests_and_merges_notes():
    v2 = FinishDecisionsV2.model_validate(
        {
            "version": 2,
            "rooms": [{"id": "r1", "name": "Primary Bath", "type": "bathroom"}, {"id": "r2", "name": "Lanai", "type": "outdoor"}],
            "decisions": [
                {"id": "d1", "roomId": "r1", "category": "Vanity", "status": "comparing", "selectedOptionId": "o2"},
            ],
            "options": [
                {"id": "o1", "decisionId": "d1", "name": "Oak", "specs": "36in", "where": "Lowe's", "estimatedCost": "$900"},
                {"id": "o2", "decisionId": "d1", "name": "Walnut", "notes": "favorite", "links": [{"url": "https://x.test"}]},
            ],
        }
    )
    v3 = migrate_v2_to_v3(v2)
    bath, lanai = v3.rooms
    assert bath.type == "bathroom"
    assert lanai.type == "other"
    decision = bath.decisions[0]
    assert decision.title == "Vanity"
    assert decision.status == "shortlist"
    oak, walnut = decision.options
    assert oak.notes == "36in\n\nWhere: Lowe's\n\nCost: $900"
    assert walnut.notes == "favorite"
    assert walnut.urls[0]["url"] == "https://x.test"
    payload = v3.to_payload()
    options = payload["rooms"][0]["decisions"][0]["options"]
    assert [o["isSelected"] for o in options] == [False, True]


def test_upgrade_to_latest_from_v1_runs_whole_chain():
    payload = upgrade_to_latest(_v1_payload()).to_payload()
    assert payload["version"] == 3
    kitchen = payload["rooms"][0]
    assert kitchen["name"] == "Kitchen"
    decision = kitchen["decisions"][0]
    assert decision["status"] == "selected"
    quartz = decision["options"][0]
    assert quartz["id"] == "item-1"
    assert "Check lead time" in quartz["notes"]
    assert quartz["urls"] == [{"id": "l1", "url": "https://example.com/q"}]


def test_finish_decisions_v3_is_coerced_not_rejected():
    raw = {
        "version": 3,
        "rooms": [
            {
                "id": "r1",
                "name": 5,
                "decisions": [{"id": "d1", "status": "bogus", "options": ["x", {"id": "o1"}]}],
            }
        ],
        "ownedKitIds": ["kit-1"],
    }
    payload = validate_and_coerce_tool_payload("finish_decisions", raw).payload
    room = payload["rooms"][0]
    assert room["name"] == "Unnamed Room"
    assert room["decisions"][0]["status"] == "deciding"
    assert [o["id"] for o in room["decisions"][0]["options"]] == ["o1"]
    assert payload["ownedKitIds"] == ["kit-1"]


def test_v3_shortlist_status_is_valid():
    raw = {"version": 3, "rooms": [{"id": "r", "decisions": [{"id": "d", "status": "shortlist"}]}]}
    payload = validate_and_coerce_tool_payload("finish_decisions", raw).payload
    assert payload["rooms"][0]["decisions"][0]["status"] == "shortlist"
