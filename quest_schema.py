import json
import logging
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

QUEST_TYPES = ("daily", "weekly", "monthly", "repeat")
DEFAULT_QUEST_TYPE = "repeat"

ZOMBIE_SPECIALITIES = (
    "NORMAL", "MEGA", "BURNER", "SPRINT", "FLANKER_FRIENDLY",
    "FLANKER_STALKER", "FLANKER", "ACID", "ELECTRIC",
)

# Platzhalter, die "beliebig" bedeuten
_ANY_VALUES = ("", "0", "*")


class ObjectiveType(str, Enum):
    ZOMBIE = "Zombie"
    ANIMAL = "Animal"
    SPECIFIC_ZOMBIE = "SpecificZombie"
    BOSS_ALL = "BOSS_ALL"
    ITEM_AMOUNT = "ItemAmount"
    CRAFT = "Craft"
    PLAYTIME = "Playtime"
    FISHING = "Fishing"
    MANUAL = "Manual"


class RewardType(str, Enum):
    NONE = "None"
    PLAYER_XP = "PlayerXP"
    ITEM = "Item"
    COMMAND = "Command"
    FACTION_POINTS = "FactionPoints"
    FACTION_XP = "FactionXP"


class ShopRewardType(str, Enum):
    ITEM = "Item"
    VEHICLE = "Vehicle"
    GIVE_XP = "GiveXP"
    COMMAND = "Command"


# Numerische Enum-Werte, wie das Plugin sie serialisiert
_REWARD_TYPE_CODES = {
    0: RewardType.NONE,
    1: RewardType.PLAYER_XP,
    2: RewardType.ITEM,
    3: RewardType.COMMAND,
    4: RewardType.FACTION_POINTS,
    5: RewardType.FACTION_XP,
}
_OBJECTIVE_TYPE_CODES = dict(enumerate(ObjectiveType))


def _lookup_enum(enum_cls, value, codes, legacy=None):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return codes.get(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            return codes.get(int(raw))
        lowered = raw.lower()
        if legacy and lowered in legacy:
            return legacy[lowered]
        for member in enum_cls:
            if member.value.lower() == lowered:
                return member
    return None


def normalize_reward_type(value):
    """Maps numeric codes, old 'XP' and any casing onto a RewardType."""
    return _lookup_enum(RewardType, value, _REWARD_TYPE_CODES, {"xp": RewardType.PLAYER_XP})


def normalize_objective_type(value):
    return _lookup_enum(ObjectiveType, value, _OBJECTIVE_TYPE_CODES)


def normalize_shop_reward_type(value):
    return _lookup_enum(ShopRewardType, value, dict(enumerate(ShopRewardType)), {"xp": ShopRewardType.GIVE_XP})


def normalize_quest_type(value):
    quest_type = str(value or "").strip().lower()
    return quest_type or DEFAULT_QUEST_TYPE


def _as_text(value):
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


##################################################################
# Schemas
##################################################################

class ObjectiveSchema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(alias="Id", min_length=1)
    type: ObjectiveType = Field(alias="Type")
    target_value: int = Field(default=1, alias="TargetValue", ge=1)
    parameter1: str = Field(default="", alias="Parameter1")
    parameter2: str = Field(default="", alias="Parameter2")
    parameter3: str = Field(default="", alias="Parameter3")
    objective_name: str = Field(default="", alias="ObjectiveName")

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        objective_type = normalize_objective_type(value)
        if objective_type is None:
            raise ValueError(f"unknown objective type {value!r}")
        return objective_type

    @field_validator("parameter1", "parameter2", "parameter3", "objective_name", mode="before")
    @classmethod
    def _stringify(cls, value):
        return _as_text(value)

    @field_validator("id", mode="before")
    @classmethod
    def _strip_id(cls, value):
        value = _as_text(value)
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_parameters(self):
        p1 = self.parameter1.strip()
        if self.type in (ObjectiveType.ZOMBIE, ObjectiveType.ANIMAL, ObjectiveType.FISHING, ObjectiveType.ITEM_AMOUNT):
            if p1 not in _ANY_VALUES and not p1.isdigit():
                raise ValueError(f"Parameter1 for {self.type.value} must be an ID, 0, * or empty")
        elif self.type == ObjectiveType.CRAFT:
            if not p1.isdigit() or p1 == "0":
                raise ValueError("Parameter1 for Craft must be the item ID to craft")
        elif self.type == ObjectiveType.BOSS_ALL:
            if p1 == "":
                self.parameter1 = ObjectiveType.BOSS_ALL.value
            elif p1 != ObjectiveType.BOSS_ALL.value:
                raise ValueError("Parameter1 for BOSS_ALL must be exactly BOSS_ALL")
        elif self.type == ObjectiveType.SPECIFIC_ZOMBIE:
            parts = self.parameter2.strip().split("|")
            if len(parts) != 2 or parts[0].upper() not in ZOMBIE_SPECIALITIES \
                    or parts[1].lower() not in ("radiated", "normal"):
                raise ValueError("Parameter2 for SpecificZombie must look like SPECIALITY|radiated or SPECIALITY|normal")
        return self


class RewardSchema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: RewardType = Field(alias="Type")
    amount: int = Field(default=0, alias="Amount", ge=0)
    item_id: int = Field(default=0, alias="ItemId", ge=0)
    command: str = Field(default="", alias="Command")

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        reward_type = normalize_reward_type(value)
        if reward_type is None or reward_type == RewardType.NONE:
            raise ValueError(f"unknown reward type {value!r}")
        return reward_type

    @field_validator("command", mode="before")
    @classmethod
    def _command_text(cls, value):
        return _as_text(value)

    @model_validator(mode="after")
    def _check_fields(self):
        if self.type == RewardType.ITEM and self.item_id <= 0:
            raise ValueError("Item rewards need an ItemId")
        if self.type == RewardType.COMMAND and not self.command.strip():
            raise ValueError("Command rewards need a Command")
        if self.type in (RewardType.PLAYER_XP, RewardType.FACTION_POINTS, RewardType.FACTION_XP) and self.amount <= 0:
            raise ValueError(f"{self.type.value} rewards need an Amount above 0")
        return self


class QuestSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=64)
    display_name: Optional[str] = None
    description: str = ""
    enabled: bool = True
    is_faction_quest: bool = False
    quest_type: str = DEFAULT_QUEST_TYPE
    tier: int = Field(default=1, ge=1)
    timer_seconds: int = Field(default=0, ge=0)
    tags: List[str] = []
    objectives: List[ObjectiveSchema] = []
    rewards: List[RewardSchema] = []

    @field_validator("quest_type", mode="before")
    @classmethod
    def _quest_type(cls, value):
        quest_type = normalize_quest_type(value)
        if quest_type not in QUEST_TYPES:
            raise ValueError(f"quest_type must be one of {', '.join(QUEST_TYPES)}")
        return quest_type

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(tag).strip() for tag in value if str(tag).strip()]

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value):
        return value or ""

    @model_validator(mode="after")
    def _check_quest(self):
        self.id = self.id.strip()
        if not self.display_name:
            self.display_name = self.id
        seen = set()
        for objective in self.objectives:
            if objective.id in seen:
                raise ValueError(f"duplicate objective Id {objective.id!r}")
            seen.add(objective.id)
        return self

    def to_row(self):
        """Spaltenwerte für quest_definitions."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "description": self.description,
            "enabled": self.enabled,
            "is_faction_quest": self.is_faction_quest,
            "quest_type": self.quest_type,
            "tier": self.tier,
            "timer_seconds": self.timer_seconds,
            "tags": ",".join(self.tags),
            "objectives": json.dumps([o.model_dump(by_alias=True, mode="json") for o in self.objectives]),
            "rewards": json.dumps([r.model_dump(by_alias=True, mode="json") for r in self.rewards]),
        }


class ShopItemSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=128)
    reward_type: ShopRewardType
    item_id: int = Field(default=0, ge=0)
    amount: int = Field(default=1, ge=1)
    cost_xp: int = Field(default=1, ge=0)
    cost_faction_xp: Optional[int] = Field(default=None, ge=0)
    sell_price: int = Field(default=0, ge=0)
    command: Optional[str] = None
    enabled: bool = True

    @field_validator("reward_type", mode="before")
    @classmethod
    def _reward_type(cls, value):
        reward_type = normalize_shop_reward_type(value)
        if reward_type is None:
            raise ValueError(f"reward_type must be one of {', '.join(t.value for t in ShopRewardType)}")
        return reward_type

    @field_validator("item_id", "amount", "cost_xp", "sell_price", mode="before")
    @classmethod
    def _defaults_for_empty(cls, value, info):
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return value

    @model_validator(mode="after")
    def _check_item(self):
        if self.reward_type in (ShopRewardType.ITEM, ShopRewardType.VEHICLE) and self.item_id <= 0:
            raise ValueError(f"{self.reward_type.value} items need an item_id")
        if self.reward_type == ShopRewardType.COMMAND and not (self.command or "").strip():
            raise ValueError("Command items need a command")
        if self.cost_faction_xp is None:
            # Ohne eigenen Wert gilt derselbe Preis wie in XP
            self.cost_faction_xp = self.cost_xp
        if not (self.command or "").strip():
            self.command = None
        return self


def validation_errors(exc: ValidationError):
    """Kompakte, JSON-taugliche Fehlerliste für die API-Antwort."""
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


##################################################################
# Lesen gespeicherter Quests (tolerant)
##################################################################

def parse_json_list(raw, what="value", quest_id=None):
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error(f"[Quest] Error parsing {what} for quest {quest_id}: {e}")
        return []
    return parsed if isinstance(parsed, list) else []


def _normalize_entries(entries, schema, what, quest_id):
    normalized = []
    for entry in entries:
        try:
            normalized.append(schema.model_validate(entry).model_dump(by_alias=True, mode="json"))
        except ValidationError as e:
            # Altbestand nicht verwerfen, nur melden
            logger.warning(f"[Quest] Malformed {what} in quest {quest_id}: {validation_errors(e)}")
            normalized.append(entry)
    return normalized


def normalize_objectives(raw, quest_id=None):
    return _normalize_entries(parse_json_list(raw, "objectives", quest_id), ObjectiveSchema, "objective", quest_id)


def normalize_rewards(raw, quest_id=None):
    return _normalize_entries(parse_json_list(raw, "rewards", quest_id), RewardSchema, "reward", quest_id)


def split_tags(raw):
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def normalize_quest_row(row):
    """Quest-Zeile aus der DB in die Form bringen, die die SPA erwartet."""
    quest = dict(row)
    quest_id = quest.get("id")
    if "quest_type" in quest:
        quest["quest_type"] = normalize_quest_type(quest.get("quest_type"))
    if "tags" in quest:
        quest["tags"] = split_tags(quest.get("tags"))
    if "objectives" in quest:
        quest["objectives"] = normalize_objectives(quest.get("objectives"), quest_id)
    if "rewards" in quest:
        quest["rewards"] = normalize_rewards(quest.get("rewards"), quest_id)
    for flag in ("enabled", "is_faction_quest"):
        if flag in quest and quest[flag] is not None:
            quest[flag] = bool(quest[flag])
    return quest


def objective_id(objective):
    if not isinstance(objective, dict):
        return "unknown"
    return objective.get("Id") or objective.get("ObjectiveId") or objective.get("id") or "unknown"


def seed_objective_progress(objectives, timestamp):
    """Ein leerer Fortschrittseintrag pro Objective."""
    return [
        {
            "ObjectiveId": objective_id(objective),
            "CurrentValue": 0,
            "Completed": False,
            "LastUpdatedUtc": timestamp,
        }
        for objective in objectives
    ]


def merge_objective_progress(objectives, progress):
    merged = []
    by_id = {p.get("ObjectiveId"): p for p in progress if isinstance(p, dict)}
    for objective in objectives:
        if not isinstance(objective, dict):
            continue
        entry = by_id.get(objective.get("Id"))
        merged.append({
            **objective,
            "currentValue": entry.get("CurrentValue", 0) if entry else 0,
            "completed": bool(entry.get("Completed")) if entry else False,
            "targetValue": objective.get("TargetValue") or 0,
        })
    return merged
