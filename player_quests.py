import json
import logging
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from models import db
from databases import db_timestamp, iso_utc, start_quest_progress
from faction_management import (
    FactionActionError, register_error_handlers, request_data, extract_auth_code,
    resolve_steam_id, load_membership,
)
from faction_roles import FactionRole, effective_role
from quest_schema import (
    merge_objective_progress, normalize_quest_row, parse_json_list, seed_objective_progress,
)

logger = logging.getLogger(__name__)

player_quests_bp = Blueprint("player_quests", __name__)
register_error_handlers(player_quests_bp)

TURNIN_PENDING = "pending"


def _prefix():
    return current_app.config["TABLE_PREFIX"]


def _authenticated_player(data=None):
    code = extract_auth_code(data)
    if not code:
        raise FactionActionError("code_required", 401, "Auth code required")
    steam_id = resolve_steam_id(db.session, _prefix(), code)
    if not steam_id:
        raise FactionActionError("invalid_code", 401, "Invalid auth code")
    return steam_id


def player_faction_id(session, prefix, steam_id):
    row = session.execute(text(f"""
        SELECT faction_id FROM {prefix}faction_members WHERE player_id = :steam_id LIMIT 1
    """), {"steam_id": steam_id}).first()
    return row.faction_id if row else None


def list_player_quests(session, prefix, steam_id):
    rows = session.execute(text(f"""
        SELECT qp.quest_id, qd.display_name, qd.description, qp.is_active, qp.is_ready_to_complete,
               qp.objective_progress, qp.started_at, qp.last_completed_at,
               qd.is_faction_quest, qd.objectives, qd.rewards
        FROM {prefix}quest_progress qp
        LEFT JOIN {prefix}quest_definitions qd ON qp.quest_id = qd.id
        WHERE qp.player_id = :steam_id
        ORDER BY qp.is_active DESC, qp.started_at DESC
    """), {"steam_id": steam_id}).mappings().all()

    quests = []
    for row in rows:
        quest = normalize_quest_row({**row, "id": row["quest_id"]})
        del quest["id"]
        progress = parse_json_list(row["objective_progress"], "objective_progress", row["quest_id"])
        quest["objective_progress"] = progress
        quest["objectives"] = merge_objective_progress(quest["objectives"], progress)
        quest["is_active"] = bool(row["is_active"])
        quest["is_ready_to_complete"] = bool(row["is_ready_to_complete"])
        quests.append(quest)
    return quests


def list_available_quests(session, prefix, steam_id):
    faction_id = player_faction_id(session, prefix, steam_id)
    # Ohne Fraktion nur normale Quests
    faction_filter = "" if faction_id is not None else " AND is_faction_quest = 0"
    rows = session.execute(text(f"""
        SELECT * FROM {prefix}quest_definitions
        WHERE enabled = 1{faction_filter}
        ORDER BY id
    """)).mappings().all()

    active = {
        row.quest_id for row in session.execute(text(f"""
            SELECT quest_id FROM {prefix}quest_progress
            WHERE player_id = :steam_id AND is_active = 1
        """), {"steam_id": steam_id})
    }

    quests = []
    for row in rows:
        quest = normalize_quest_row(row)
        quest["isTaken"] = quest["id"] in active
        quests.append(quest)
    return faction_id, quests


def assign_player_quest(session, prefix, steam_id, quest_id):
    faction_id = player_faction_id(session, prefix, steam_id)
    quest = session.execute(text(f"""
        SELECT id, is_faction_quest, objectives FROM {prefix}quest_definitions
        WHERE id = :quest_id AND enabled = 1
    """), {"quest_id": quest_id}).first()

    if not quest:
        raise FactionActionError("quest_not_found", 404, "Quest not found or not available")
    if quest.is_faction_quest and faction_id is None:
        raise FactionActionError("not_in_faction", 403,
                                 "You are not in a faction. This quest requires faction membership.")

    objectives = parse_json_list(quest.objectives, "objectives", quest_id)
    progress_json = json.dumps(seed_objective_progress(objectives, iso_utc()))
    if not start_quest_progress(session, prefix, steam_id, quest_id, progress_json):
        logger.info(f"[Quest] Quest {quest_id} is already active for player {steam_id}")
        raise FactionActionError("quest_already_active", 400, "Quest already active")

    session.commit()
    logger.info(f"[Quest] Assigned quest {quest_id} to player {steam_id} ({len(objectives)} objectives)")
    return {
        "success": True,
        "message": "Quest assigned successfully",
        "questId": quest_id,
        "playerId": steam_id,
    }


def queue_quest_turn_in(session, prefix, steam_id, quest_id):
    """
    Legt eine Abgabe-Anfrage in die Queue. Das Plugin holt sie ab und
    vergibt die Belohnungen, hier wird nichts als erledigt markiert.
    """
    progress = session.execute(text(f"""
        SELECT qp.quest_id, qp.is_active, qp.is_ready_to_complete, qd.is_faction_quest
        FROM {prefix}quest_progress qp
        LEFT JOIN {prefix}quest_definitions qd ON qp.quest_id = qd.id
        WHERE qp.player_id = :steam_id AND qp.quest_id = :quest_id
        LIMIT 1
    """), {"steam_id": steam_id, "quest_id": quest_id}).first()

    if not progress:
        raise FactionActionError("quest_not_found", 404, "Quest not found")
    if not progress.is_active:
        raise FactionActionError("quest_not_active", 400, "Quest is not active")
    if not progress.is_ready_to_complete:
        raise FactionActionError("quest_not_ready", 400,
                                 "Quest is not ready to complete. Please complete all objectives first.")

    if progress.is_faction_quest:
        membership = load_membership(session, prefix, steam_id)
        if not membership:
            raise FactionActionError("not_in_faction", 403, "You are not in a faction")
        role = effective_role(membership["role"], str(membership["leader_id"]) == steam_id)
        if role < FactionRole.VICE_LEADER:
            raise FactionActionError("insufficient_permissions", 403,
                                     "Only faction leader or vice leader can turn in faction quests")

    result = session.execute(text(f"""
        INSERT INTO {prefix}quest_turnin_queue (steam_id, quest_id, status, created_at)
        VALUES (:steam_id, :quest_id, :status, :now)
    """), {"steam_id": steam_id, "quest_id": quest_id, "status": TURNIN_PENDING, "now": db_timestamp()})
    session.commit()
    queue_id = result.lastrowid
    logger.info(f"[Quest] Quest turn-in request queued: {quest_id} for player {steam_id} (queue ID: {queue_id})")

    return {
        "success": True,
        "message": "Quest turn-in request has been queued. It will be processed within 5 seconds.",
        "questId": quest_id,
        "playerId": steam_id,
        "queueId": queue_id,
        "note": "The quest will be turned in automatically. Please wait a moment.",
    }


@player_quests_bp.route("/api/player/quests", methods=["GET"])
def player_quests():
    steam_id = _authenticated_player()
    return jsonify({"steamId": steam_id, "quests": list_player_quests(db.session, _prefix(), steam_id)})


@player_quests_bp.route("/api/player/available-quests", methods=["GET"])
def player_available_quests():
    steam_id = _authenticated_player()
    faction_id, quests = list_available_quests(db.session, _prefix(), steam_id)
    return jsonify({"steamId": steam_id, "playerFactionId": faction_id, "quests": quests})


@player_quests_bp.route("/api/player/assign-quest", methods=["POST"])
def player_assign_quest():
    data = request_data()
    steam_id = _authenticated_player(data)
    quest_id = data.get("questId")
    if not quest_id:
        raise FactionActionError("quest_id_required", 400, "Quest ID is required")
    return jsonify(assign_player_quest(db.session, _prefix(), steam_id, str(quest_id)))


@player_quests_bp.route("/api/player/turn-in-quest", methods=["POST"])
def player_turn_in_quest():
    data = request_data()
    steam_id = _authenticated_player(data)
    quest_id = data.get("questId")
    if not quest_id:
        raise FactionActionError("quest_id_required", 400, "Quest ID is required")
    return jsonify(queue_quest_turn_in(db.session, _prefix(), steam_id, str(quest_id)))
