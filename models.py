import os
from flask_sqlalchemy import SQLAlchemy
from dotenv import load_dotenv

load_dotenv()

db = SQLAlchemy()

# Alle Plugin-Tabellen tragen denselben Prefix
TABLE_PREFIX = os.getenv("TABLE_PREFIX", "kawe_")

# Name der (fremden) Statistik-Tabelle des Stats-Plugins, ohne Prefix
PLAYER_STATS_TABLE = "PlayerStatsNew"


class Faction(db.Model):
    __tablename__ = f"{TABLE_PREFIX}factions"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    tag = db.Column(db.String(16))
    color = db.Column(db.String(16))
    icon_url = db.Column(db.String(512))
    leader_id = db.Column(db.String(32))


class FactionState(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_states"
    faction_id = db.Column(db.Integer, primary_key=True)
    faction_points = db.Column(db.Integer, default=0)
    faction_xp = db.Column(db.Integer, default=0)
    tier = db.Column(db.Integer, default=1)
    unlock_flags = db.Column(db.String(256))


class FactionMember(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_members"
    faction_id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(32), primary_key=True)
    role = db.Column(db.Integer, default=0)
    joined_at = db.Column(db.DateTime)


class FactionRoleAlias(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_role_aliases"
    faction_id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.Integer, primary_key=True)
    alias = db.Column(db.String(32))


class FactionInvitation(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_invitations"
    id = db.Column(db.Integer, primary_key=True)
    faction_id = db.Column(db.Integer, nullable=False)
    invited_player_id = db.Column(db.String(32), nullable=False)
    inviter_id = db.Column(db.String(32))
    created_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)


class FactionJoinRequest(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_join_requests"
    id = db.Column(db.Integer, primary_key=True)
    faction_id = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.String(32), nullable=False)
    created_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)


class QuestDefinition(db.Model):
    __tablename__ = f"{TABLE_PREFIX}quest_definitions"
    id = db.Column(db.String(64), primary_key=True)
    display_name = db.Column(db.String(128))
    description = db.Column(db.Text)
    enabled = db.Column(db.Boolean, default=True)
    is_faction_quest = db.Column(db.Boolean, default=False)
    quest_type = db.Column(db.String(16), default="repeat")
    tier = db.Column(db.Integer, default=1)
    timer_seconds = db.Column(db.Integer, default=0)
    tags = db.Column(db.String(256))
    objectives = db.Column(db.Text)
    rewards = db.Column(db.Text)


class QuestProgress(db.Model):
    __tablename__ = f"{TABLE_PREFIX}quest_progress"
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(32), nullable=False)
    quest_id = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, default=False)
    is_ready_to_complete = db.Column(db.Boolean, default=False)
    objective_progress = db.Column(db.Text)
    started_at = db.Column(db.DateTime)
    last_completed_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime)
    __table_args__ = (db.UniqueConstraint("player_id", "quest_id"),)


class FactionQuest(db.Model):
    __tablename__ = f"{TABLE_PREFIX}faction_quests"
    id = db.Column(db.Integer, primary_key=True)
    faction_id = db.Column(db.Integer, nullable=False)
    quest_id = db.Column(db.String(64), nullable=False)
    started_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, default=True)
    is_completed = db.Column(db.Boolean, default=False)
    is_failed = db.Column(db.Boolean, default=False)


class ShopItem(db.Model):
    __tablename__ = f"{TABLE_PREFIX}shop_items"
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(128), nullable=False)
    reward_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, default=0)
    amount = db.Column(db.Integer, default=1)
    cost_xp = db.Column(db.Integer, default=1)
    cost_faction_xp = db.Column(db.Integer, default=1)
    sell_price = db.Column(db.Integer, default=0)
    command = db.Column(db.String(512))
    enabled = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime)


class QuestTurninQueue(db.Model):
    __tablename__ = f"{TABLE_PREFIX}quest_turnin_queue"
    id = db.Column(db.Integer, primary_key=True)
    steam_id = db.Column(db.String(32), nullable=False)
    quest_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), default="pending")
    created_at = db.Column(db.DateTime)


class PlayerAuth(db.Model):
    __tablename__ = f"{TABLE_PREFIX}player_auth"
    steam_id = db.Column(db.String(32), primary_key=True)
    auth_code = db.Column(db.String(32), nullable=False)
    created_at_utc = db.Column(db.DateTime)
    last_used_at_utc = db.Column(db.DateTime)


class WebUser(db.Model):
    __tablename__ = f"{TABLE_PREFIX}web_users"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    is_admin = db.Column(db.Boolean, default=False)
    active = db.Column(db.Boolean, default=True)


# Gehört dem Stats-Plugin, wird hier nur gelesen (und in Tests angelegt)
class PlayerStats(db.Model):
    __tablename__ = PLAYER_STATS_TABLE
    SteamId = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    Name = db.Column(db.String(64))
    Kills = db.Column(db.Integer, default=0)
    Headshots = db.Column(db.Integer, default=0)
    PVPDeaths = db.Column(db.Integer, default=0)
    PVEDeaths = db.Column(db.Integer, default=0)
    Zombies = db.Column(db.Integer, default=0)
    MegaZombies = db.Column(db.Integer, default=0)
    Animals = db.Column(db.Integer, default=0)
    Resources = db.Column(db.Integer, default=0)
    Harvests = db.Column(db.Integer, default=0)
    Fish = db.Column(db.Integer, default=0)
    Structures = db.Column(db.Integer, default=0)
    Barricades = db.Column(db.Integer, default=0)
    Playtime = db.Column(db.Integer, default=0)
    UIDisabled = db.Column(db.Boolean, default=False)
    LastUpdated = db.Column(db.DateTime)


# Tabellen, die dieser Server selbst anlegen darf
OWNED_TABLES = [
    model.__table__ for model in (
        Faction, FactionState, FactionMember, FactionRoleAlias, FactionInvitation,
        FactionJoinRequest, QuestDefinition, QuestProgress, FactionQuest, ShopItem,
        QuestTurninQueue, PlayerAuth, WebUser
    )
]
