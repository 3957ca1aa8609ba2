import json

import pytest
from pydantic import ValidationError

from quest_schema import (
    ObjectiveSchema, ObjectiveType, QuestSchema, RewardSchema, RewardType, ShopItemSchema, ShopRewardType,
    merge_objective_progress, normalize_objective_type, normalize_quest_row, normalize_quest_type,
    normalize_reward_type, parse_json_list, seed_objective_progress, validation_errors,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, RewardType.NONE),
        (1, RewardType.PLAYER_XP),
        ("2", RewardType.ITEM),
        (3, RewardType.COMMAND),
        (4, RewardType.FACTION_POINTS),
        (5, RewardType.FACTION_XP),
        ("XP", RewardType.PLAYER_XP),
        ("playerxp", RewardType.PLAYER_XP),
        ("Item", RewardType.ITEM),
        (9, None),
        ("Gold", None),
    ],
)
def test_normalize_reward_type(value, expected) -> None:
    assert normalize_reward_type(value) == expected


def test_normalize_objective_type() -> None:
    assert normalize_objective_type("zombie") == ObjectiveType.ZOMBIE
    assert normalize_objective_type("BOSS_ALL") == ObjectiveType.BOSS_ALL
    assert normalize_objective_type(0) == ObjectiveType.ZOMBIE
    assert normalize_objective_type("2") == ObjectiveType.SPECIFIC_ZOMBIE
    assert normalize_objective_type("Dance") is None


def test_normalize_quest_type_defaults_to_repeat() -> None:
    assert normalize_quest_type(None) == "repeat"
    assert normalize_quest_type("  ") == "repeat"
    assert normalize_quest_type(" Daily ") == "daily"


def test_objective_defaults_and_aliases() -> None:
    objective = ObjectiveSchema.model_validate({"Id": "o1", "Type": "Playtime"})
    dumped = objective.model_dump(by_alias=True, mode="json")
    assert dumped["Id"] == "o1"
    assert dumped["Type"] == "Playtime"
    assert dumped["TargetValue"] == 1
    assert dumped["Parameter1"] == ""


def test_objective_parameter_rules() -> None:
    ObjectiveSchema.model_validate({"Id": "a", "Type": "Zombie", "Parameter1": "*"})
    ObjectiveSchema.model_validate({"Id": "b", "Type": "Animal", "Parameter1": 6})
    ObjectiveSchema.model_validate({"Id": "c", "Type": "Craft", "Parameter1": "1041"})
    ObjectiveSchema.model_validate({"Id": "d", "Type": "SpecificZombie", "Parameter2": "BURNER|radiated"})

    boss = ObjectiveSchema.model_validate({"Id": "e", "Type": "BOSS_ALL"})
    assert boss.parameter1 == "BOSS_ALL"

    with pytest.raises(ValidationError):
        ObjectiveSchema.model_validate({"Id": "f", "Type": "Craft"})
    with pytest.raises(ValidationError):
        ObjectiveSchema.model_validate({"Id": "g", "Type": "BOSS_ALL", "Parameter1": "BOSS_ONE"})
    with pytest.raises(ValidationError):
        ObjectiveSchema.model_validate({"Id": "h", "Type": "SpecificZombie", "Parameter2": "TANK"})
    with pytest.raises(ValidationError):
        ObjectiveSchema.model_validate({"Id": "i", "Type": "Fishing", "Parameter1": "salmon"})
    with pytest.raises(ValidationError):
        ObjectiveSchema.model_validate({"Id": "j", "Type": "Zombie", "TargetValue": 0})


def test_reward_rules() -> None:
    reward = RewardSchema.model_validate({"Type": 1, "Amount": 50})
    assert reward.type == RewardType.PLAYER_XP
    assert RewardSchema.model_validate({"Type": "XP", "Amount": 5}).type == RewardType.PLAYER_XP

    with pytest.raises(ValidationError):
        RewardSchema.model_validate({"Type": "Item", "Amount": 1})
    with pytest.raises(ValidationError):
        RewardSchema.model_validate({"Type": "Command"})
    with pytest.raises(ValidationError):
        RewardSchema.model_validate({"Type": "None"})


def test_quest_schema_defaults_and_row() -> None:
    quest = QuestSchema.model_validate({
        "id": "QMG-001",
        "tags": ["pve", " zombies ", ""],
        "objectives": [{"Id": "o1", "Type": "Zombie", "TargetValue": 10}],
        "rewards": [{"Type": 4, "Amount": 20}],
    })
    assert quest.display_name == "QMG-001"
    assert quest.quest_type == "repeat"
    assert quest.tier == 1

    row = quest.to_row()
    assert row["tags"] == "pve,zombies"
    assert json.loads(row["rewards"])[0]["Type"] == "FactionPoints"
    assert json.loads(row["objectives"])[0]["TargetValue"] == 10


def test_quest_schema_rejects_duplicate_objective_ids() -> None:
    with pytest.raises(ValidationError) as exc:
        QuestSchema.model_validate({
            "id": "Q1",
            "objectives": [{"Id": "o1", "Type": "Manual"}, {"Id": "o1", "Type": "Playtime"}],
        })
    messages = [err["message"] for err in validation_errors(exc.value)]
    assert any("duplicate objective Id" in message for message in messages)


def test_quest_schema_rejects_unknown_quest_type() -> None:
    with pytest.raises(ValidationError) as exc:
        QuestSchema.model_validate({"id": "Q1", "quest_type": "yearly"})
    assert validation_errors(exc.value)[0]["field"] == "quest_type"


def test_shop_item_defaults() -> None:
    item = ShopItemSchema.model_validate({"id": 7, "name": "Medkit", "reward_type": "item", "item_id": 95,
                                          "cost_xp": 40})
    assert item.reward_type == ShopRewardType.ITEM
    assert item.amount == 1
    assert item.cost_faction_xp == 40
    assert item.command is None

    with pytest.raises(ValidationError):
        ShopItemSchema.model_validate({"id": 8, "name": "Car", "reward_type": "Vehicle"})
    with pytest.raises(ValidationError):
        ShopItemSchema.model_validate({"id": 9, "name": "Heal", "reward_type": "Command", "command": " "})


def test_seed_objective_progress_round_trip() -> None:
    objectives = [
        {"Id": "a", "Type": "Zombie"},
        {"ObjectiveId": "b", "Type": "Manual"},
        {"id": "c"},
        {"Type": "Playtime"},
    ]
    seeded = seed_objective_progress(objectives, "2024-05-01T10:00:00.000Z")
    restored = json.loads(json.dumps(seeded))

    assert [entry["ObjectiveId"] for entry in restored] == ["a", "b", "c", "unknown"]
    for entry in restored:
        assert entry["CurrentValue"] == 0
        assert entry["Completed"] is False
        assert entry["LastUpdatedUtc"] == "2024-05-01T10:00:00.000Z"


def test_lenient_reads_keep_malformed_entries() -> None:
    row = {
        "id": "OLD-1",
        "quest_type": "",
        "tags": "a, b,,",
        "enabled": 1,
        "is_faction_quest": 0,
        "objectives": json.dumps([{"Id": "x", "Type": 0}, {"Id": "y", "Type": "Teleport"}]),
        "rewards": "not json",
    }
    quest = normalize_quest_row(row)
    assert quest["quest_type"] == "repeat"
    assert quest["tags"] == ["a", "b"]
    assert quest["enabled"] is True and quest["is_faction_quest"] is False
    assert quest["objectives"][0]["Type"] == "Zombie"
    assert quest["objectives"][1] == {"Id": "y", "Type": "Teleport"}
    assert quest["rewards"] == []
    assert parse_json_list('{"a": 1}') == []


def test_merge_objective_progress() -> None:
    objectives = [{"Id": "a", "TargetValue": 5}, {"Id": "b", "TargetValue": 2}]
    progress = [{"ObjectiveId": "a", "CurrentValue": 3, "Completed": False}]
    merged = merge_objective_progress(objectives, progress)
    assert merged[0]["currentValue"] == 3 and merged[0]["targetValue"] == 5
    assert merged[1]["currentValue"] == 0 and merged[1]["completed"] is False
