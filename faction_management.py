import json
import logging
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import text, bindparam
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from models import db, PLAYER_STATS_TABLE
from databases import db_timestamp, iso_utc, start_quest_progress, steam_id_number, utc_now
from faction_roles import (
    FactionRole, build_permissions, can_set_role, effective_role, member_permissions,
    normalize_role, role_display, role_from_db, role_name,
)
from plugin_api import PluginOutcome
from quest_schema import parse_json_list, seed_objective_progress

logger = logging.getLogger(__name__)

faction_bp = Blueprint("faction_management", __name__)

# Laufzeit einer Fraktions-Quest, wenn die Definition keinen Timer hat
DEFAULT_FACTION_QUEST_SECONDS = 3600


class FactionActionError(Exception):
    """Fehler einer Spieler-/Fraktionsaktion, wird als {success: false, error, message} gerendert."""

    def __init__(self, code, status=400, message=None, **extra):
        super().__init__(message or code)
        self.code = code
        self.status = status
        self.message = message
        self.extra = extra

    def to_dict(self):
        body = {"success": False, "error": self.code}
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


def register_error_handlers(bp):
    @bp.errorhandler(FactionActionError)
    def handle_action_error(e):
        return jsonify(e.to_dict()), e.status

    @bp.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        logger.exception(f"{request.path} error: {e}")
        return jsonify({"success": False, "error": "internal_error", "message": str(e)}), 500


register_error_handlers(faction_bp)


def request_data():
    # Nur JSON-Objekte, Listen oder Strings zählen als leerer Body
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def extract_auth_code(data=None):
    """Auth-Code aus Body, Query oder Header X-Auth-Code."""
    data = request_data() if data is None else data
    code = data.get("code") or request.args.get("code") or request.headers.get("X-Auth-Code")
    if isinstance(code, str):
        code = code.strip()
    return code or None


def resolve_steam_id(session, prefix, code):
    if not code:
        return None
    row = session.execute(text(f"""
        SELECT steam_id FROM {prefix}player_auth
        WHERE UPPER(auth_code) = UPPER(:code)
        LIMIT 1
    """), {"code": str(code).strip()}).first()
    return str(row.steam_id) if row else None


def require_steam_id(session, prefix, code):
    steam_id = resolve_steam_id(session, prefix, code)
    if not steam_id:
        raise FactionActionError("invalid_code", 401)
    return steam_id


def load_membership(session, prefix, steam_id):
    return session.execute(text(f"""
        SELECT fm.faction_id, fm.role, f.leader_id, COALESCE(fs.tier, 1) AS tier
        FROM {prefix}faction_members fm
        JOIN {prefix}factions f ON fm.faction_id = f.id
        LEFT JOIN {prefix}faction_states fs ON fs.faction_id = f.id
        WHERE fm.player_id = :steam_id
        LIMIT 1
    """), {"steam_id": steam_id}).mappings().first()


def _same_player(a, b):
    return a is not None and b is not None and str(a) == str(b)


def _target_from(data):
    target = data.get("targetSteamId") or data.get("target")
    return str(target).strip() if target not in (None, "") else None


##################################################################
# Spielernamen aus PlayerStatsNew
##################################################################

def fetch_player_names(session, steam_ids):
    ids = sorted({steam_id_number(i) for i in steam_ids} - {None, 0})
    if not ids:
        return {}
    try:
        rows = session.execute(
            text(f"""
                SELECT CAST(SteamId AS CHAR) AS SteamId, Name
                FROM {PLAYER_STATS_TABLE}
                WHERE SteamId IN :ids
            """).bindparams(bindparam("ids", expanding=True)),
            {"ids": ids},
        ).fetchall()
    except SQLAlchemyError as e:
        logger.warning(f"[Players] Failed to load names for faction data: {e}")
        return {}
    return {str(row.SteamId): row.Name or str(row.SteamId) for row in rows}


def attach_player_names(session, payload):
    members = payload.get("members") or []
    invitations = payload.get("invitations") or []
    join_requests = payload.get("join_requests") or []

    ids = [m["steamId"] for m in members]
    for inv in invitations:
        ids.extend([inv["steamId"], inv["inviterId"]])
    ids.extend(r["steamId"] for r in join_requests)

    names = fetch_player_names(session, ids)
    for entry in members + join_requests:
        if entry["steamId"] in names:
            entry["playerName"] = names[entry["steamId"]]
    for inv in invitations:
        if inv["steamId"] in names:
            inv["playerName"] = names[inv["steamId"]]
        if inv["inviterId"] in names:
            inv["inviterName"] = names[inv["inviterId"]]
    return payload


##################################################################
# Fraktions-Info
##################################################################

def no_faction_payload():
    return {
        "success": True,
        "faction": None,
        "role": role_name(FactionRole.NONE),
        "role_level": int(FactionRole.NONE),
        "role_display": "No Faction",
        "permissions": build_permissions(FactionRole.NONE),
        "members": [],
        "invitations": [],
        "join_requests": [],
        "aliases": {},
        "leader_count": 0,
        "leadership_conflict": False,
    }


def get_faction_info(session, prefix, steam_id):
    """
    Baut die komplette Fraktionsansicht eines Spielers: Fraktion, eigene Rolle
    und Rechte, Mitgliederliste, offene Einladungen und Beitrittsanfragen.
    Ohne Fraktion kommt ein leerer Payload mit Rolle "None" zurück.
    """
    faction = session.execute(text(f"""
        SELECT f.id, f.name, f.tag, f.color, f.icon_url, f.leader_id,
               fs.faction_points, fs.faction_xp, fs.tier, fs.unlock_flags
        FROM {prefix}faction_members fm
        JOIN {prefix}factions f ON fm.faction_id = f.id
        LEFT JOIN {prefix}faction_states fs ON fs.faction_id = f.id
        WHERE fm.player_id = :steam_id
        LIMIT 1
    """), {"steam_id": steam_id}).mappings().first()

    if not faction:
        return no_faction_payload()

    faction_id = faction["id"]
    leader_id = str(faction["leader_id"]) if faction["leader_id"] is not None else None
    now = db_timestamp()

    member_rows = session.execute(text(f"""
        SELECT player_id, role, joined_at FROM {prefix}faction_members
        WHERE faction_id = :faction_id
    """), {"faction_id": faction_id}).fetchall()

    alias_rows = session.execute(text(f"""
        SELECT role, alias FROM {prefix}faction_role_aliases
        WHERE faction_id = :faction_id
    """), {"faction_id": faction_id}).fetchall()

    invitation_rows = session.execute(text(f"""
        SELECT invited_player_id, inviter_id, created_at, expires_at
        FROM {prefix}faction_invitations
        WHERE faction_id = :faction_id AND expires_at > :now
    """), {"faction_id": faction_id, "now": now}).fetchall()

    join_request_rows = session.execute(text(f"""
        SELECT player_id, created_at, expires_at
        FROM {prefix}faction_join_requests
        WHERE faction_id = :faction_id AND expires_at > :now
    """), {"faction_id": faction_id, "now": now}).fetchall()

    aliases = {str(row.role): row.alias for row in alias_rows if row.alias is not None}

    members = []
    for row in member_rows:
        level = role_from_db(row.role)
        member_id = str(row.player_id)
        members.append({
            "steamId": member_id,
            "role": role_name(level),
            "role_level": int(level),
            "role_display": role_display(level, aliases),
            "is_leader": _same_player(leader_id, member_id),
            "joined_at": row.joined_at,
        })
    members.sort(key=lambda m: (-m["role_level"], m["steamId"]))

    # Nach einer Leader-Übergabe ohne Plugin kann es zwei Leader geben
    leader_count = sum(1 for m in members if m["role_level"] == FactionRole.LEADER or m["is_leader"])
    if leader_count > 1:
        logger.warning(f"[Faction] Faction {faction_id} has {leader_count} leaders")

    own = next((m for m in members if m["steamId"] == steam_id), None)
    own_is_leader = _same_player(leader_id, steam_id)
    own_level = effective_role(own["role_level"] if own else FactionRole.MEMBER, own_is_leader)

    payload = {
        "success": True,
        "faction": {
            "id": faction_id,
            "name": faction["name"],
            "tag": faction["tag"],
            "color": faction["color"],
            "iconUrl": faction["icon_url"],
            "leaderId": leader_id,
            "faction_points": faction["faction_points"] or 0,
            "faction_xp": faction["faction_xp"] or 0,
            "tier": faction["tier"] or 1,
            "unlock_flags": faction["unlock_flags"] or None,
        },
        "role": role_name(own_level),
        "role_level": int(own_level),
        "role_display": role_display(own_level, aliases),
        "permissions": member_permissions(own_level, own_is_leader),
        "members": members,
        "invitations": [
            {
                "steamId": str(row.invited_player_id),
                "inviterId": str(row.inviter_id) if row.inviter_id is not None else None,
                "createdAt": row.created_at,
                "expiresAt": row.expires_at,
            }
            for row in invitation_rows
        ],
        "join_requests": [
            {"steamId": str(row.player_id), "createdAt": row.created_at, "expiresAt": row.expires_at}
            for row in join_request_rows
        ],
        "aliases": aliases,
        "leader_count": leader_count,
        "leadership_conflict": leader_count > 1,
    }
    return attach_player_names(session, payload)


##################################################################
# Rollen setzen
##################################################################

def set_member_role(session, prefix, plugin, code, actor_id, target_id, role_level):
    """
    Prüft Rechte und setzt die Rolle eines Mitglieds.
    Zuerst über das Plugin, bei Fehlschlag direkt in der DB.
    Gibt (Payload, PluginOutcome) zurück.
    """
    membership = load_membership(session, prefix, actor_id)
    if not membership:
        raise FactionActionError("not_in_faction", 403)

    faction_id = membership["faction_id"]
    target = session.execute(text(f"""
        SELECT faction_id, role FROM {prefix}faction_members
        WHERE player_id = :target_id AND faction_id = :faction_id
        LIMIT 1
    """), {"target_id": target_id, "faction_id": faction_id}).first()
    if not target:
        raise FactionActionError("target_not_in_faction", 404)

    is_leader = _same_player(membership["leader_id"], actor_id)
    permissions = member_permissions(membership["role"], is_leader)
    if not can_set_role(permissions, role_level):
        raise FactionActionError("insufficient_permissions", 403, "You do not have permission to set this role")

    if _same_player(target_id, actor_id) and is_leader and role_level != FactionRole.LEADER:
        raise FactionActionError("cannot_demote_self", 400,
                                 "Leader cannot demote themselves. Transfer leadership first.")

    plugin_res = plugin.call("/api/faction/set-role",
                             {"code": code, "targetSteamId": target_id, "role": int(role_level)})
    if plugin_res.succeeded:
        logger.info(f"[Faction] set-role {target_id} -> {role_name(role_level)} in faction {faction_id}: "
                    f"{PluginOutcome.DELEGATED.value}")
        return dict(plugin_res.data, outcome=PluginOutcome.DELEGATED.value), PluginOutcome.DELEGATED

    error = plugin_res.data.get("error") if isinstance(plugin_res.data, dict) else None
    logger.warning(f"[Faction] Plugin API error for set-role: {error or plugin_res.status_code}, "
                   f"attempting database fallback")

    try:
        session.execute(text(f"""
            UPDATE {prefix}faction_members SET role = :role
            WHERE player_id = :target_id AND faction_id = :faction_id
        """), {"role": int(role_level), "target_id": target_id, "faction_id": faction_id})
        if role_level == FactionRole.LEADER:
            # Der alte Leader behält seine Rolle
            session.execute(text(f"""
                UPDATE {prefix}factions SET leader_id = :target_id WHERE id = :faction_id
            """), {"target_id": target_id, "faction_id": faction_id})
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[Faction] set-role {target_id} in faction {faction_id}: "
                     f"{PluginOutcome.FAILED.value} ({e})")
        raise FactionActionError("database_error", 500, str(e), outcome=PluginOutcome.FAILED.value)

    logger.info(f"[Faction] set-role {target_id} -> {role_name(role_level)} in faction {faction_id}: "
                f"{PluginOutcome.FELL_BACK.value}")
    return {
        "success": True,
        "message": f"Role set to {role_name(role_level)} successfully",
        "role": role_name(role_level),
        "role_level": int(role_level),
        "outcome": PluginOutcome.FELL_BACK.value,
    }, PluginOutcome.FELL_BACK


##################################################################
# Fraktions-Quests
##################################################################

def available_faction_quests(session, prefix, steam_id):
    membership = load_membership(session, prefix, steam_id)
    if not membership:
        raise FactionActionError("not_in_faction", 403)

    rows = session.execute(text(f"""
        SELECT id, display_name, description, tier
        FROM {prefix}quest_definitions
        WHERE is_faction_quest = 1 AND enabled = 1 AND COALESCE(tier, 1) <= :tier
        ORDER BY tier, display_name
    """), {"tier": membership["tier"] or 1}).fetchall()
    return [
        {"id": row.id, "displayName": row.display_name, "description": row.description, "tier": row.tier or 1}
        for row in rows
    ]


def track_faction_quest(session, prefix, faction_id, quest_id, timer_seconds):
    now = utc_now()
    expires_at = db_timestamp(now, offset_seconds=timer_seconds or DEFAULT_FACTION_QUEST_SECONDS)
    params = {"faction_id": faction_id, "quest_id": quest_id, "now": db_timestamp(now), "expires_at": expires_at}
    existing = session.execute(text(f"""
        SELECT id FROM {prefix}faction_quests
        WHERE faction_id = :faction_id AND quest_id = :quest_id
    """), params).first()

    if existing:
        session.execute(text(f"""
            UPDATE {prefix}faction_quests
            SET started_at = :now, expires_at = :expires_at, is_active = 1, is_completed = 0, is_failed = 0
            WHERE faction_id = :faction_id AND quest_id = :quest_id
        """), params)
    else:
        session.execute(text(f"""
            INSERT INTO {prefix}faction_quests
                (faction_id, quest_id, started_at, expires_at, is_active, is_completed, is_failed)
            VALUES (:faction_id, :quest_id, :now, :expires_at, 1, 0, 0)
        """), params)


def assign_faction_quest(session, prefix, actor_id, quest_id, member_ids):
    """
    Vergibt eine Fraktions-Quest an mehrere Mitglieder.
    Mitglieder, die die Quest schon aktiv haben, landen in failedMembers.
    """
    membership = load_membership(session, prefix, actor_id)
    if not membership:
        raise FactionActionError("not_in_faction", 403)

    is_leader = _same_player(membership["leader_id"], actor_id)
    permissions = member_permissions(membership["role"], is_leader)
    if not permissions["canManageQuests"]:
        raise FactionActionError("insufficient_permissions", 403, "Only Vice Leader or Leader can assign quests")

    quest = session.execute(text(f"""
        SELECT id, display_name, tier, timer_seconds, objectives
        FROM {prefix}quest_definitions
        WHERE id = :quest_id AND is_faction_quest = 1 AND enabled = 1
    """), {"quest_id": quest_id}).first()
    if not quest:
        raise FactionActionError("quest_not_found", 404)

    faction_tier = membership["tier"] or 1
    quest_tier = quest.tier or 1
    if quest_tier > faction_tier:
        raise FactionActionError("quest_tier_too_high", 400,
                                 f"Quest requires Tier {quest_tier}, but faction is only Tier {faction_tier}")

    member_ids = list(dict.fromkeys(member_ids))
    found = session.execute(
        text(f"""
            SELECT player_id FROM {prefix}faction_members
            WHERE faction_id = :faction_id AND player_id IN :member_ids
        """).bindparams(bindparam("member_ids", expanding=True)),
        {"faction_id": membership["faction_id"], "member_ids": member_ids},
    ).fetchall()
    if len(found) != len(member_ids):
        raise FactionActionError("invalid_members", 400, "Some members are not in your faction")

    objectives = parse_json_list(quest.objectives, "objectives", quest_id)
    progress_json = json.dumps(seed_objective_progress(objectives, iso_utc()))

    assigned = []
    failed = []
    for member_id in member_ids:
        if start_quest_progress(session, prefix, member_id, quest_id, progress_json):
            assigned.append(member_id)
        else:
            failed.append({"steamId": member_id, "reason": "Quest already active"})

    if not assigned:
        session.rollback()
        raise FactionActionError("assignment_failed", 400, "Failed to assign quest to any members",
                                 failedMembers=failed)

    track_faction_quest(session, prefix, membership["faction_id"], quest_id, quest.timer_seconds)
    session.commit()
    logger.info(f"[Faction] Quest {quest_id} assigned to {len(assigned)} member(s) of faction "
                f"{membership['faction_id']} ({len(failed)} failed)")

    result = {
        "success": True,
        "message": f"Quest assigned to {len(assigned)} member(s) successfully",
        "assignedCount": len(assigned),
        "failedCount": len(failed),
    }
    if failed:
        result["failedMembers"] = failed
    return result


##################################################################
# Routen
##################################################################

def _plugin():
    return current_app.extensions["plugin_client"]


def _prefix():
    return current_app.config["TABLE_PREFIX"]


def _proxy(plugin_path, payload):
    plugin_res = _plugin().call(plugin_path, payload)
    return jsonify(plugin_res.data or {"success": False}), plugin_res.status_code or 200


@faction_bp.route("/api/player/faction/info", methods=["POST"])
def faction_info():
    code = extract_auth_code()
    if not code:
        raise FactionActionError("code_required", 400)
    steam_id = require_steam_id(db.session, _prefix(), code)
    return jsonify(get_faction_info(db.session, _prefix(), steam_id))


@faction_bp.route("/api/player/faction/invite", methods=["POST"])
@faction_bp.route("/api/player/faction/accept-request", methods=["POST"])
@faction_bp.route("/api/player/faction/reject-request", methods=["POST"])
def faction_target_action():
    data = request_data()
    code = extract_auth_code(data)
    target = _target_from(data)
    if not code or not target:
        raise FactionActionError("code_and_target_required", 400)
    action = request.path.rsplit("/", 1)[-1]
    return _proxy(f"/api/faction/{action}", {"code": code, "targetSteamId": target})


@faction_bp.route("/api/player/faction/set-role", methods=["POST"])
def faction_set_role():
    data = request_data()
    code = extract_auth_code(data)
    target = _target_from(data)
    role = data.get("role")
    if not code or not target or role is None:
        raise FactionActionError("code_target_role_required", 400)

    role_level = normalize_role(role)
    if role_level is None or role_level < FactionRole.MEMBER:
        raise FactionActionError(
            "invalid_role", 400,
            f"Invalid role value. Expected number (0-3) or role name "
            f"(Member, Officer, ViceLeader, Leader), got: {json.dumps(role)}")

    steam_id = require_steam_id(db.session, _prefix(), code)
    payload, _outcome = set_member_role(db.session, _prefix(), _plugin(), code, steam_id, target, role_level)
    return jsonify(payload), 200


@faction_bp.route("/api/player/faction/set-alias", methods=["POST"])
def faction_set_alias():
    data = request_data()
    code = extract_auth_code(data)
    role = data.get("role")
    if not code or role is None:
        raise FactionActionError("code_and_role_required", 400)

    role_level = normalize_role(role)
    if role_level is None or role_level < FactionRole.MEMBER:
        raise FactionActionError("invalid_role", 400, f"Invalid role value: {json.dumps(role)}")
    return _proxy("/api/faction/set-alias", {"code": code, "role": int(role_level), "alias": data.get("alias") or ""})


@faction_bp.route("/api/player/faction/available-quests", methods=["POST"])
def faction_available_quests():
    code = extract_auth_code()
    if not code:
        raise FactionActionError("code_required", 400)
    steam_id = require_steam_id(db.session, _prefix(), code)
    return jsonify({"success": True, "quests": available_faction_quests(db.session, _prefix(), steam_id)})


@faction_bp.route("/api/player/faction/assign-quest", methods=["POST"])
def faction_assign_quest():
    data = request_data()
    code = extract_auth_code(data)
    quest_id = data.get("questId")
    members = data.get("assignedMembers")
    member_ids = [str(m).strip() for m in members if str(m).strip()] if isinstance(members, list) else []
    if not code or not quest_id or not member_ids:
        raise FactionActionError("code_quest_members_required", 400)

    steam_id = require_steam_id(db.session, _prefix(), code)
    return jsonify(assign_faction_quest(db.session, _prefix(), steam_id, str(quest_id), member_ids))
