import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="faction_web_test_"))

os.environ["TABLE_PREFIX"] = "kawe_"
os.environ["LOG_DIR"] = str(_TEST_ROOT / "logs")
os.environ.pop("ADMIN_API_KEY", None)
os.environ.pop("DATABASE_URL", None)

from sqlalchemy import text  # noqa: E402

from app import create_app  # noqa: E402
from models import (  # noqa: E402
    db, Faction, FactionInvitation, FactionJoinRequest, FactionMember, FactionRoleAlias,
    FactionState, PlayerAuth, PlayerStats, QuestDefinition, QuestProgress,
)
from databases import utc_now  # noqa: E402
from plugin_api import PluginResponse  # noqa: E402

PREFIX = "kawe_"

DEFAULT_OBJECTIVES = [
    {"Id": "kill_zombies", "Type": "Zombie", "TargetValue": 25, "Parameter1": "", "ObjectiveName": "Kill zombies"},
    {"Id": "play", "Type": "Playtime", "TargetValue": 30, "ObjectiveName": "Play 30 minutes"},
]
DEFAULT_REWARDS = [{"Type": "PlayerXP", "Amount": 100}]


class StubPlugin:
    """Ersetzt den Plugin-Client, zeichnet Aufrufe auf."""

    base_url = "http://plugin.test"

    def __init__(self):
        self.calls = []
        self.response = PluginResponse(500, {
            "success": False,
            "error": "plugin_api_unavailable",
            "message": "connection refused",
        })

    def call(self, path, payload):
        self.calls.append((path, payload))
        return self.response


class Seeder:
    def __init__(self, app):
        self.app = app

    def add(self, *objects):
        with self.app.app_context():
            db.session.add_all(objects)
            db.session.commit()

    def fetch(self, sql, params=None):
        with self.app.app_context():
            result = db.session.execute(text(sql), params or {})
            return [dict(row._mapping) for row in result.fetchall()]

    def faction(self, faction_id=1, leader_id="100", tier=1, name="Wolves", tag="WLF"):
        self.add(
            Faction(id=faction_id, name=name, tag=tag, color="#aa0000", leader_id=leader_id),
            FactionState(faction_id=faction_id, faction_points=10, faction_xp=250, tier=tier),
        )

    def member(self, faction_id, player_id, role=0, joined_at=None):
        self.add(FactionMember(faction_id=faction_id, player_id=player_id, role=role,
                               joined_at=joined_at or datetime(2024, 1, 1, 12, 0, 0)))

    def auth(self, steam_id, code):
        self.add(PlayerAuth(steam_id=steam_id, auth_code=code, created_at_utc=datetime(2024, 1, 1)))

    def alias(self, faction_id, role, alias):
        self.add(FactionRoleAlias(faction_id=faction_id, role=role, alias=alias))

    def invitation(self, faction_id, invited, inviter, expires_in=timedelta(days=1)):
        now = utc_now()
        self.add(FactionInvitation(faction_id=faction_id, invited_player_id=invited, inviter_id=inviter,
                                   created_at=now, expires_at=now + expires_in))

    def join_request(self, faction_id, player_id, expires_in=timedelta(days=1)):
        now = utc_now()
        self.add(FactionJoinRequest(faction_id=faction_id, player_id=player_id,
                                    created_at=now, expires_at=now + expires_in))

    def quest(self, quest_id, tier=1, faction=False, enabled=True, timer_seconds=0,
              objectives=None, rewards=None, quest_type="daily", tags="pve,zombies"):
        self.add(QuestDefinition(
            id=quest_id,
            display_name=f"Quest {quest_id}",
            description="Test quest",
            enabled=enabled,
            is_faction_quest=faction,
            quest_type=quest_type,
            tier=tier,
            timer_seconds=timer_seconds,
            tags=tags,
            objectives=json.dumps(DEFAULT_OBJECTIVES if objectives is None else objectives),
            rewards=json.dumps(DEFAULT_REWARDS if rewards is None else rewards),
        ))

    def progress(self, player_id, quest_id, active=True, ready=False, objective_progress=None):
        self.add(QuestProgress(
            player_id=player_id,
            quest_id=quest_id,
            is_active=active,
            is_ready_to_complete=ready,
            objective_progress=json.dumps(objective_progress or []),
            started_at=datetime(2024, 1, 2, 8, 0, 0),
        ))

    def player_stats(self, steam_id, name, **stats):
        self.add(PlayerStats(SteamId=int(steam_id), Name=name, LastUpdated=datetime(2024, 1, 3), **stats))


@pytest.fixture()
def app(tmp_path):
    application = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "LOG_DIR": str(tmp_path / "logs"),
        "ADMIN_API_KEY": None,
    })
    with application.app_context():
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def seed(app):
    return Seeder(app)


@pytest.fixture()
def plugin(app, monkeypatch):
    stub = StubPlugin()
    monkeypatch.setitem(app.extensions, "plugin_client", stub)
    return stub


@pytest.fixture()
def faction_setup(seed):
    """
    Fraktion 1 (Tier 2) mit Leader 100, Vice Leader 200, Officer 300, Member 400.
    Spieler 500 ist in keiner Fraktion.
    """
    seed.faction(1, leader_id="100", tier=2)
    seed.member(1, "100", role=3)
    seed.member(1, "200", role=2)
    seed.member(1, "300", role=1)
    seed.member(1, "400", role=0)
    for steam_id, code in (("100", "LEAD01"), ("200", "VICE02"), ("300", "OFFI03"),
                           ("400", "MEMB04"), ("500", "LONE05")):
        seed.auth(steam_id, code)
    return seed
