import json
from datetime import datetime

import pytest

from models import FactionQuest

from conftest import PREFIX, DEFAULT_OBJECTIVES


def _assign(client, code, quest_id, members):
    return client.post("/api/player/faction/assign-quest",
                       json={"code": code, "questId": quest_id, "assignedMembers": members})


def _parse(value):
    return datetime.strptime(str(value)[:19], "%Y-%m-%d %H:%M:%S")


def test_requires_code_quest_and_members(client) -> None:
    for body in ({"questId": "FQ-1", "assignedMembers": ["1"]},
                 {"code": "LEAD01", "assignedMembers": ["1"]},
                 {"code": "LEAD01", "questId": "FQ-1", "assignedMembers": []},
                 {"code": "LEAD01", "questId": "FQ-1", "assignedMembers": "400"}):
        res = client.post("/api/player/faction/assign-quest", json=body)
        assert res.status_code == 400
        assert res.get_json()["error"] == "code_quest_members_required"


def test_invalid_code_and_no_faction(client, faction_setup) -> None:
    assert _assign(client, "XXXX", "FQ-1", ["400"]).get_json()["error"] == "invalid_code"
    res = _assign(client, "LONE05", "FQ-1", ["400"])
    assert res.status_code == 403
    assert res.get_json()["error"] == "not_in_faction"


def test_officer_cannot_assign(client, faction_setup) -> None:
    faction_setup.quest("FQ-1", faction=True)
    res = _assign(client, "OFFI03", "FQ-1", ["400"])
    assert res.status_code == 403
    assert res.get_json()["error"] == "insufficient_permissions"


def test_quest_must_be_enabled_faction_quest(client, faction_setup) -> None:
    faction_setup.quest("SOLO-1", faction=False)
    faction_setup.quest("FQ-OFF", faction=True, enabled=False)
    for quest_id in ("SOLO-1", "FQ-OFF", "MISSING"):
        res = _assign(client, "LEAD01", quest_id, ["400"])
        assert res.status_code == 404
        assert res.get_json()["error"] == "quest_not_found"


def test_tier_gate(client, faction_setup) -> None:
    faction_setup.quest("FQ-T3", faction=True, tier=3)
    res = _assign(client, "LEAD01", "FQ-T3", ["400"])
    assert res.status_code == 400
    body = res.get_json()
    assert body["success"] is False
    assert body["error"] == "quest_tier_too_high"
    assert body["message"] == "Quest requires Tier 3, but faction is only Tier 2"


def test_members_must_belong_to_faction(client, faction_setup) -> None:
    faction_setup.quest("FQ-1", faction=True)
    res = _assign(client, "LEAD01", "FQ-1", ["400", "500"])
    assert res.status_code == 400
    assert res.get_json()["error"] == "invalid_members"
    assert faction_setup.fetch(f"SELECT * FROM {PREFIX}quest_progress") == []


def test_assigns_and_seeds_progress(client, faction_setup) -> None:
    seed = faction_setup
    seed.quest("FQ-1", faction=True, tier=2, timer_seconds=7200)

    res = _assign(client, "VICE02", "FQ-1", ["300", "400", "400"])
    assert res.status_code == 200
    body = res.get_json()
    assert body["success"] is True
    assert body["assignedCount"] == 2
    assert body["failedCount"] == 0
    assert "failedMembers" not in body

    rows = seed.fetch(f"SELECT * FROM {PREFIX}quest_progress ORDER BY player_id")
    assert [r["player_id"] for r in rows] == ["300", "400"]
    for row in rows:
        assert row["is_active"] == 1
        assert row["is_ready_to_complete"] == 0
        progress = json.loads(row["objective_progress"])
        assert [p["ObjectiveId"] for p in progress] == [o["Id"] for o in DEFAULT_OBJECTIVES]
        assert all(p["CurrentValue"] == 0 and p["Completed"] is False for p in progress)
        assert all(p["LastUpdatedUtc"].endswith("Z") for p in progress)

    tracking = seed.fetch(f"SELECT * FROM {PREFIX}faction_quests WHERE faction_id = 1")
    assert len(tracking) == 1
    assert tracking[0]["quest_id"] == "FQ-1"
    assert tracking[0]["is_active"] == 1
    delta = _parse(tracking[0]["expires_at"]) - _parse(tracking[0]["started_at"])
    assert delta.total_seconds() == 7200


def test_already_active_member_is_partial_failure(client, faction_setup) -> None:
    seed = faction_setup
    seed.quest("FQ-1", faction=True)
    seed.progress("300", "FQ-1", active=True)

    res = _assign(client, "LEAD01", "FQ-1", ["300", "400"])
    assert res.status_code == 200
    body = res.get_json()
    assert body["assignedCount"] == 1
    assert body["failedCount"] == 1
    assert body["failedMembers"] == [{"steamId": "300", "reason": "Quest already active"}]


def test_zero_successes_is_assignment_failed(client, faction_setup) -> None:
    seed = faction_setup
    seed.quest("FQ-1", faction=True)
    seed.progress("400", "FQ-1", active=True)

    res = _assign(client, "LEAD01", "FQ-1", ["400"])
    assert res.status_code == 400
    body = res.get_json()
    assert body["error"] == "assignment_failed"
    assert body["failedMembers"] == [{"steamId": "400", "reason": "Quest already active"}]
    assert seed.fetch(f"SELECT * FROM {PREFIX}faction_quests") == []


def test_reassignment_reactivates_tracking(client, faction_setup) -> None:
    seed = faction_setup
    seed.quest("FQ-1", faction=True)
    seed.progress("400", "FQ-1", active=False)
    seed.add(FactionQuest(faction_id=1, quest_id="FQ-1", started_at=datetime(2024, 1, 1),
                          expires_at=datetime(2024, 1, 1, 1), is_active=False, is_completed=True, is_failed=True))

    res = _assign(client, "LEAD01", "FQ-1", ["400"])
    assert res.status_code == 200

    progress = seed.fetch(f"SELECT is_active FROM {PREFIX}quest_progress WHERE player_id = '400'")
    assert progress == [{"is_active": 1}]

    tracking = seed.fetch(f"SELECT * FROM {PREFIX}faction_quests")
    assert len(tracking) == 1
    assert (tracking[0]["is_active"], tracking[0]["is_completed"], tracking[0]["is_failed"]) == (1, 0, 0)
    # Ohne Timer läuft die Quest eine Stunde
    delta = _parse(tracking[0]["expires_at"]) - _parse(tracking[0]["started_at"])
    assert delta.total_seconds() == 3600


def test_available_faction_quests_respect_tier(client, faction_setup) -> None:
    seed = faction_setup
    seed.quest("FQ-B", faction=True, tier=2)
    seed.quest("FQ-A", faction=True, tier=1)
    seed.quest("FQ-HIGH", faction=True, tier=3)
    seed.quest("FQ-OFF", faction=True, enabled=False)
    seed.quest("SOLO", faction=False)

    res = client.post("/api/player/faction/available-quests", json={"code": "MEMB04"})
    assert res.status_code == 200
    quests = res.get_json()["quests"]
    assert [q["id"] for q in quests] == ["FQ-A", "FQ-B"]
    assert quests[0] == {"id": "FQ-A", "displayName": "Quest FQ-A", "description": "Test quest", "tier": 1}

    res = client.post("/api/player/faction/available-quests", json={"code": "LONE05"})
    assert res.status_code == 403
    assert res.get_json()["error"] == "not_in_faction"


@pytest.mark.parametrize(
    "faction_tier, quest_tier, allowed",
    [
        (1, 1, True),
        (1, 2, False),
        (2, 3, False),
        (3, 3, True),
        (3, 5, False),
        (5, 2, True),
    ],
)
def test_tier_gate_across_tiers(client, seed, faction_tier, quest_tier, allowed) -> None:
    seed.faction(7, leader_id="700", tier=faction_tier)
    seed.member(7, "700", role=3)
    seed.member(7, "701", role=0)
    seed.auth("700", "TIER70")
    seed.quest("FQ-T", faction=True, tier=quest_tier)

    res = _assign(client, "TIER70", "FQ-T", ["701"])
    if allowed:
        assert res.status_code == 200
        assert res.get_json()["assignedCount"] == 1
    else:
        assert res.status_code == 400
        assert res.get_json()["error"] == "quest_tier_too_high"
        assert res.get_json()["message"] == (
            f"Quest requires Tier {quest_tier}, but faction is only Tier {faction_tier}")
        assert seed.fetch(f"SELECT * FROM {PREFIX}quest_progress") == []
