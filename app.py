from flask import Flask, Blueprint, request, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.engine import URL
from pydantic import ValidationError
from models import db, TABLE_PREFIX, PLAYER_STATS_TABLE
import logging
import logging.handlers
from functools import wraps
import bcrypt
import os
import re
import json
from databases import db_timestamp, has_player_stats_table, check_connection, steam_id_number
from faction_management import faction_bp, request_data
from player_quests import player_quests_bp
from plugin_api import PluginClient
from quest_schema import QuestSchema, ShopItemSchema, normalize_quest_row, parse_json_list, validation_errors

# Lade Umgebungsvariablen aus .env
from dotenv import load_dotenv

# Lade Umgebungsvariablen
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Default API version
API_VERSION = os.getenv("API_VERSION_PROD", "1.0.0")

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)

PLAYER_STATS_COLUMNS = (
    "CAST(SteamId AS CHAR) AS SteamId, Name, Kills, Headshots, PVPDeaths, PVEDeaths, Zombies, "
    "MegaZombies, Animals, Resources, Harvests, Fish, Structures, Barricades, Playtime, "
    "UIDisabled, LastUpdated"
)

SHOP_ITEM_COLUMNS = (
    "id, name, reward_type, item_id, amount, cost_xp, cost_faction_xp, sell_price, command, "
    "enabled, created_at, updated_at"
)

# Befehle mit diesen Begriffen gehören nicht in die öffentliche Liste
HIDDEN_COMMAND_KEYWORDS = ("admin", "debug", "reload")


##################################################################
# Konfiguration & App-Factory
##################################################################

def load_config():
    """Liest alle Einstellungen aus der Umgebung (.env)."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        database_url = URL.create(
            "mysql+pymysql",
            username=os.getenv("DB_USER", "root"),
            password=os.getenv("DB_PASSWORD", ""),
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "3306")),
            database=os.getenv("DB_NAME", "unturned"),
        ).render_as_string(hide_password=False)

    return {
        "SQLALCHEMY_DATABASE_URI": database_url,
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "10")),
        "TABLE_PREFIX": TABLE_PREFIX,
        "PLUGIN_HTTP_HOST": os.getenv("PLUGIN_HTTP_HOST", "127.0.0.1"),
        "PLUGIN_HTTP_PORT": int(os.getenv("PLUGIN_HTTP_PORT", "8080")),
        "PLUGIN_HTTP_AUTH_TOKEN": os.getenv("PLUGIN_HTTP_AUTH_TOKEN", ""),
        "PLUGIN_HTTP_TIMEOUT": float(os.getenv("PLUGIN_HTTP_TIMEOUT", "10")),
        "HOST": os.getenv("HOST", "0.0.0.0"),
        "PORT": int(os.getenv("PORT", "3000")),
        "ADMIN_API_KEY": os.getenv("ADMIN_API_KEY") or None,
        "COMMANDS_FILE": os.getenv("COMMANDS_FILE", os.path.join(BASE_DIR, "commands.json")),
        "LOG_DIR": os.getenv("LOG_DIR", os.path.join(BASE_DIR, "logs")),
        "SERVER_NAME_PROD": os.getenv("SERVER_NAME_PROD", "Faction Web Manager"),
        "API_VERSION_PROD": API_VERSION,
    }


def setup_logging(log_dir):
    os.makedirs(log_dir, exist_ok=True)
    logfile_path = os.path.join(log_dir, "app.log")
    logging.basicConfig(
        level=logging.INFO,
        handlers=[
            logging.handlers.RotatingFileHandler(logfile_path, maxBytes=128 * 1024 * 1024, backupCount=10),
            logging.StreamHandler()
        ],
        format='%(asctime)s %(levelname)s:%(name)s:%(message)s'
    )


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if overrides:
        app.config.update(overrides)

    setup_logging(app.config["LOG_DIR"])

    # Tabellennamen der Models stehen seit dem Import fest, der Prefix kommt nur aus der Umgebung
    if app.config["TABLE_PREFIX"] != TABLE_PREFIX:
        logger.warning(f"TABLE_PREFIX '{app.config['TABLE_PREFIX']}' ignoriert, "
                       f"Prefix ist '{TABLE_PREFIX}' (Umgebungsvariable TABLE_PREFIX)")
        app.config["TABLE_PREFIX"] = TABLE_PREFIX

    # Pool-Einstellungen nur für MySQL, SQLite (Tests) kennt sie nicht
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("mysql"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_size": app.config["DB_POOL_SIZE"],
            "pool_recycle": 3600,
            "pool_pre_ping": True,
        })

    db.init_app(app)
    app.extensions["plugin_client"] = PluginClient(
        host=app.config["PLUGIN_HTTP_HOST"],
        port=app.config["PLUGIN_HTTP_PORT"],
        token=app.config["PLUGIN_HTTP_AUTH_TOKEN"],
        timeout=app.config["PLUGIN_HTTP_TIMEOUT"],
    )

    app.register_blueprint(api_bp)
    app.register_blueprint(faction_bp)
    app.register_blueprint(player_quests_bp)

    if not app.config["ADMIN_API_KEY"]:
        logger.warning("ADMIN_API_KEY ist nicht gesetzt, Admin-Endpunkte sind ungeschützt.")
    logger.info(f"Plugin HTTP API: {app.extensions['plugin_client'].base_url}")
    return app


# Decorator für Admin-Endpunkte (Header apikey)
def require_admin_key(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_KEY")
        if expected:
            apikey = request.headers.get("apikey")
            if apikey != expected:
                logger.warning(f"Invalid API-Key received on {request.path}")
                return jsonify({"error": "Unauthorized: Invalid API key"}), 401
        return f(*args, **kwargs)
    return decorated


def _prefix():
    return current_app.config["TABLE_PREFIX"]


def _rows(result):
    return [dict(row._mapping) for row in result.fetchall()]


def _error(e, context):
    db.session.rollback()
    logger.error(f"{context} error: {str(e)}")
    return jsonify({"error": str(e)}), 500


##################################################################
# Allgemeine Endpunkte
##################################################################

# Root-Endpoint
@api_bp.route("/", methods=["GET"])
def root():
    """Root endpoint providing basic server information"""
    return jsonify({
        "message": "Faction Web Manager is running",
        "version": current_app.config["API_VERSION_PROD"],
        "name": current_app.config["SERVER_NAME_PROD"],
        "endpoints": {
            "health": "/api/health",
            "api": "/api/"
        }
    }), 200


@api_bp.route("/api/health", methods=["GET"])
def health():
    try:
        check_connection(db.session)
        return jsonify({"status": "ok", "database": "connected"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Health check failed: {str(e)}")
        return jsonify({"status": "error", "message": str(e)}), 500


@api_bp.route("/api/dashboard/stats", methods=["GET"])
def dashboard_stats():
    prefix = _prefix()
    try:
        def count(sql):
            return db.session.execute(text(sql)).scalar() or 0

        return jsonify({
            "totalFactions": count(f"SELECT COUNT(*) FROM {prefix}factions"),
            "totalQuests": count(f"SELECT COUNT(*) FROM {prefix}quest_definitions WHERE enabled = 1"),
            "totalPlayers": count(f"SELECT COUNT(DISTINCT player_id) FROM {prefix}quest_progress"),
            "activeQuests": count(f"SELECT COUNT(*) FROM {prefix}quest_progress WHERE is_active = 1"),
        })
    except Exception as e:
        return _error(e, "Dashboard stats")


def _is_hidden_command(cmd):
    if cmd.get("isAdmin") is True or cmd.get("isDebug") is True:
        return True
    words = [p.lower() for p in cmd.get("permissions") or []]
    if cmd.get("name"):
        words.append(cmd["name"].lower())
    return any(keyword in word for word in words for keyword in HIDDEN_COMMAND_KEYWORDS)


@api_bp.route("/api/commands", methods=["GET"])
def commands():
    try:
        with open(current_app.config["COMMANDS_FILE"], "r", encoding="utf-8") as f:
            commands_data = json.load(f)

        visible = [cmd for cmd in commands_data.get("commands", []) if not _is_hidden_command(cmd)]
        grouped = {}
        for cmd in visible:
            grouped.setdefault(cmd.get("category") or "Other", []).append(cmd)

        return jsonify({"commands": visible, "grouped": grouped, "total": len(visible)})
    except Exception as e:
        logger.error(f"Error loading commands: {str(e)}")
        return jsonify({"error": str(e)}), 500


##################################################################
# Fraktionen
##################################################################

@api_bp.route("/api/factions", methods=["GET"])
def list_factions():
    prefix = _prefix()
    try:
        result = db.session.execute(text(f"""
            SELECT f.id, f.name, f.tag, f.color, f.icon_url, f.leader_id,
                COALESCE(fs.faction_points, 0) AS faction_points,
                COALESCE(fs.faction_xp, 0) AS faction_xp,
                COALESCE(fs.tier, 1) AS tier,
                (SELECT COUNT(*) FROM {prefix}faction_members WHERE faction_id = f.id) AS member_count
            FROM {prefix}factions f
            LEFT JOIN {prefix}faction_states fs ON f.id = fs.faction_id
            ORDER BY f.id ASC
        """))
        return jsonify(_rows(result))
    except Exception as e:
        return _error(e, "[Faction] List factions")


@api_bp.route("/api/factions/<int:faction_id>", methods=["GET"])
def faction_detail(faction_id):
    prefix = _prefix()
    params = {"faction_id": faction_id}
    try:
        faction = db.session.execute(text(f"""
            SELECT f.id, f.name, f.tag, f.color, f.icon_url, f.leader_id,
                COALESCE(fs.faction_points, 0) AS faction_points,
                COALESCE(fs.faction_xp, 0) AS faction_xp,
                COALESCE(fs.tier, 1) AS tier
            FROM {prefix}factions f
            LEFT JOIN {prefix}faction_states fs ON f.id = fs.faction_id
            WHERE f.id = :faction_id
        """), params).mappings().first()

        if not faction:
            return jsonify({"error": "Faction not found"}), 404

        members = _rows(db.session.execute(text(f"""
            SELECT faction_id, player_id, joined_at
            FROM {prefix}faction_members WHERE faction_id = :faction_id ORDER BY joined_at DESC
        """), params))

        invitations = _rows(db.session.execute(text(f"""
            SELECT faction_id, invited_player_id, inviter_id, created_at, expires_at
            FROM {prefix}faction_invitations
            WHERE faction_id = :faction_id AND expires_at > :now
            ORDER BY created_at DESC
        """), {**params, "now": db_timestamp()}))

        completed_by_tier = db.session.execute(text(f"""
            SELECT COALESCE(qd.tier, 1) AS tier, COUNT(*) AS completed_count
            FROM {prefix}faction_quests fq
            LEFT JOIN {prefix}quest_definitions qd ON fq.quest_id = qd.id
            WHERE fq.faction_id = :faction_id AND fq.is_completed = 1
            GROUP BY COALESCE(qd.tier, 1)
            ORDER BY tier ASC
        """), params).fetchall()

        total_quests = db.session.execute(text(f"""
            SELECT COUNT(*) FROM {prefix}faction_quests WHERE faction_id = :faction_id
        """), params).scalar() or 0

        return jsonify({
            **faction,
            "members": members,
            "invitations": invitations,
            "completed_quests_by_tier": {str(row.tier): row.completed_count for row in completed_by_tier},
            "total_quests": total_quests,
        })
    except Exception as e:
        return _error(e, "[Faction] Faction detail")


@api_bp.route("/api/faction-quests/<int:faction_id>", methods=["GET"])
def faction_quests(faction_id):
    prefix = _prefix()
    try:
        result = db.session.execute(text(f"""
            SELECT fq.*, qd.display_name, qd.description
            FROM {prefix}faction_quests fq
            LEFT JOIN {prefix}quest_definitions qd ON fq.quest_id = qd.id
            WHERE fq.faction_id = :faction_id
            ORDER BY fq.started_at DESC
        """), {"faction_id": faction_id})
        return jsonify(_rows(result))
    except Exception as e:
        return _error(e, "[Faction] Faction quests")


##################################################################
# Quests (Admin)
##################################################################

@api_bp.route("/api/quests/next-id", methods=["GET"])
def next_quest_id():
    prefix = _prefix()
    try:
        ids = db.session.execute(text(f"""
            SELECT id FROM {prefix}quest_definitions WHERE id LIKE 'QMG-%'
        """)).scalars().all()
        numbers = [int(m.group(1)) for m in (re.match(r"^QMG-(\d+)", qid) for qid in ids) if m]
        return jsonify({"nextId": f"QMG-{(max(numbers) if numbers else 0) + 1:03d}"})
    except Exception as e:
        return _error(e, "[Quest] Next quest id")


@api_bp.route("/api/quests", methods=["GET"])
def list_quests():
    prefix = _prefix()
    try:
        result = db.session.execute(text(f"SELECT * FROM {prefix}quest_definitions ORDER BY id"))
        return jsonify([normalize_quest_row(row) for row in _rows(result)])
    except Exception as e:
        return _error(e, "[Quest] List quests")


@api_bp.route("/api/quests/<quest_id>", methods=["GET"])
def quest_detail(quest_id):
    prefix = _prefix()
    try:
        row = db.session.execute(text(f"""
            SELECT * FROM {prefix}quest_definitions WHERE id = :quest_id
        """), {"quest_id": quest_id}).mappings().first()
        if not row:
            return jsonify({"error": "Quest not found"}), 404

        progress = _rows(db.session.execute(text(f"""
            SELECT player_id, is_active, is_ready_to_complete, objective_progress, started_at, last_completed_at
            FROM {prefix}quest_progress WHERE quest_id = :quest_id
        """), {"quest_id": quest_id}))
        for entry in progress:
            entry["objective_progress"] = parse_json_list(entry["objective_progress"], "objective_progress", quest_id)

        quest = normalize_quest_row(row)
        quest["progress"] = progress
        return jsonify(quest)
    except Exception as e:
        return _error(e, "[Quest] Quest detail")


@api_bp.route("/api/quests", methods=["POST"])
@require_admin_key
def save_quest():
    prefix = _prefix()
    try:
        quest = QuestSchema.model_validate(request_data())
    except ValidationError as e:
        return jsonify({"error": "Invalid quest", "details": validation_errors(e)}), 400

    try:
        values = quest.to_row()
        exists = db.session.execute(text(f"""
            SELECT 1 FROM {prefix}quest_definitions WHERE id = :id
        """), {"id": quest.id}).first()
        if exists:
            db.session.execute(text(f"""
                UPDATE {prefix}quest_definitions
                SET display_name = :display_name, description = :description, enabled = :enabled,
                    is_faction_quest = :is_faction_quest, quest_type = :quest_type, tier = :tier,
                    timer_seconds = :timer_seconds, tags = :tags, objectives = :objectives, rewards = :rewards
                WHERE id = :id
            """), values)
        else:
            db.session.execute(text(f"""
                INSERT INTO {prefix}quest_definitions
                    (id, display_name, description, enabled, is_faction_quest, quest_type, tier,
                     timer_seconds, tags, objectives, rewards)
                VALUES (:id, :display_name, :description, :enabled, :is_faction_quest, :quest_type, :tier,
                        :timer_seconds, :tags, :objectives, :rewards)
            """), values)
        db.session.commit()
        logger.info(f"[Quest] Quest {quest.id} saved ({len(quest.objectives)} objectives, {len(quest.rewards)} rewards)")
        return jsonify({"success": True, "message": "Quest saved successfully"})
    except Exception as e:
        return _error(e, "[Quest] Save quest")


@api_bp.route("/api/quests/<quest_id>", methods=["DELETE"])
@require_admin_key
def delete_quest(quest_id):
    prefix = _prefix()
    try:
        result = db.session.execute(text(f"""
            DELETE FROM {prefix}quest_definitions WHERE id = :quest_id
        """), {"quest_id": quest_id})
        if result.rowcount == 0:
            db.session.rollback()
            return jsonify({"error": "Quest not found"}), 404
        db.session.commit()
        logger.info(f"[Quest] Quest {quest_id} deleted")
        return jsonify({"success": True, "message": "Quest deleted successfully"})
    except Exception as e:
        return _error(e, "[Quest] Delete quest")


##################################################################
# Spieler
##################################################################

@api_bp.route("/api/players", methods=["GET"])
def list_players():
    try:
        if not has_player_stats_table(db.engine):
            logger.info(f"[Players] {PLAYER_STATS_TABLE} table not found")
            return jsonify([])
        result = db.session.execute(text(f"""
            SELECT {PLAYER_STATS_COLUMNS}
            FROM {PLAYER_STATS_TABLE}
            ORDER BY LastUpdated DESC
            LIMIT 1000
        """))
        return jsonify(_rows(result))
    except Exception as e:
        return _error(e, "[Players] List players")


@api_bp.route("/api/players/<player_id>/stats", methods=["GET"])
def player_stats(player_id):
    try:
        if not has_player_stats_table(db.engine):
            return jsonify({"error": f"{PLAYER_STATS_TABLE} table does not exist"}), 404
        steam_id = steam_id_number(player_id)
        row = None
        if steam_id is not None:
            row = db.session.execute(text(f"""
                SELECT {PLAYER_STATS_COLUMNS}
                FROM {PLAYER_STATS_TABLE}
                WHERE SteamId = :steam_id
                LIMIT 1
            """), {"steam_id": steam_id}).mappings().first()
        if not row:
            return jsonify({"error": "Player stats not found"}), 404
        return jsonify(dict(row))
    except Exception as e:
        return _error(e, "[Players] Player stats")


@api_bp.route("/api/players/<player_id>", methods=["GET"])
def player_detail(player_id):
    prefix = _prefix()
    try:
        progress = _rows(db.session.execute(text(f"""
            SELECT qp.player_id, qp.quest_id, qp.is_active, qp.is_ready_to_complete,
                qp.objective_progress, qp.started_at, qp.last_completed_at,
                qd.display_name, qd.description, qd.is_faction_quest
            FROM {prefix}quest_progress qp
            LEFT JOIN {prefix}quest_definitions qd ON qp.quest_id = qd.id
            WHERE qp.player_id = :player_id
            ORDER BY qp.is_active DESC, qp.last_completed_at DESC
        """), {"player_id": player_id}))
        for entry in progress:
            entry["objective_progress"] = parse_json_list(
                entry["objective_progress"], "objective_progress", entry["quest_id"])

        membership = db.session.execute(text(f"""
            SELECT fm.faction_id, fm.player_id, fm.joined_at,
                f.name AS faction_name, f.tag AS faction_tag
            FROM {prefix}faction_members fm
            LEFT JOIN {prefix}factions f ON fm.faction_id = f.id
            WHERE fm.player_id = :player_id
        """), {"player_id": player_id}).mappings().first()

        return jsonify({
            "player_id": player_id,
            "quests": progress,
            "faction": dict(membership) if membership else None,
        })
    except Exception as e:
        return _error(e, "[Players] Player detail")


##################################################################
# Shop
##################################################################

@api_bp.route("/api/shop/items", methods=["GET"])
def list_shop_items():
    try:
        result = db.session.execute(text(f"SELECT {SHOP_ITEM_COLUMNS} FROM {_prefix()}shop_items ORDER BY id"))
        return jsonify(_rows(result))
    except Exception as e:
        return _error(e, "[Shop] List items")


@api_bp.route("/api/shop/items/<int:item_id>", methods=["GET"])
def shop_item_detail(item_id):
    try:
        row = db.session.execute(text(f"""
            SELECT {SHOP_ITEM_COLUMNS} FROM {_prefix()}shop_items WHERE id = :item_id
        """), {"item_id": item_id}).mappings().first()
        if not row:
            return jsonify({"error": "Shop item not found"}), 404
        return jsonify(dict(row))
    except Exception as e:
        return _error(e, "[Shop] Item detail")


@api_bp.route("/api/shop/items", methods=["POST"])
@require_admin_key
def save_shop_item():
    prefix = _prefix()
    data = request_data()
    if not data.get("id") or not data.get("name") or not data.get("reward_type"):
        return jsonify({"error": "Missing required fields: id, name, reward_type"}), 400

    try:
        item = ShopItemSchema.model_validate(data)
    except ValidationError as e:
        return jsonify({"error": "Invalid shop item", "details": validation_errors(e)}), 400

    try:
        values = item.model_dump(mode="json")
        values["now"] = db_timestamp()
        exists = db.session.execute(text(f"SELECT 1 FROM {prefix}shop_items WHERE id = :id"), values).first()
        if exists:
            db.session.execute(text(f"""
                UPDATE {prefix}shop_items
                SET name = :name, reward_type = :reward_type, item_id = :item_id, amount = :amount,
                    cost_xp = :cost_xp, cost_faction_xp = :cost_faction_xp, sell_price = :sell_price,
                    command = :command, enabled = :enabled, updated_at = :now
                WHERE id = :id
            """), values)
        else:
            db.session.execute(text(f"""
                INSERT INTO {prefix}shop_items
                    (id, name, reward_type, item_id, amount, cost_xp, cost_faction_xp, sell_price,
                     command, enabled, created_at, updated_at)
                VALUES (:id, :name, :reward_type, :item_id, :amount, :cost_xp, :cost_faction_xp, :sell_price,
                        :command, :enabled, :now, :now)
            """), values)
        db.session.commit()
        logger.info(f"[Shop] Item {item.id} ({item.reward_type.value}) saved")
        return jsonify({"success": True, "message": "Shop item saved successfully"})
    except Exception as e:
        return _error(e, "[Shop] Save item")


@api_bp.route("/api/shop/items/<int:item_id>", methods=["DELETE"])
@require_admin_key
def delete_shop_item(item_id):
    try:
        result = db.session.execute(text(f"""
            DELETE FROM {_prefix()}shop_items WHERE id = :item_id
        """), {"item_id": item_id})
        if result.rowcount == 0:
            db.session.rollback()
            return jsonify({"error": "Shop item not found"}), 404
        db.session.commit()
        logger.info(f"[Shop] Item {item_id} deleted")
        return jsonify({"success": True, "message": "Shop item deleted successfully"})
    except Exception as e:
        return _error(e, "[Shop] Delete item")


##################################################################
# Auth/User-Funktionen
##################################################################

# Spieler-Login per Auth-Code (ingame erzeugt)
@api_bp.route("/api/auth/login", methods=["POST"])
def auth_login():
    prefix = _prefix()
    data = request_data()
    code = str(data.get("code") or "").strip()
    if not code:
        return jsonify({"error": "Auth code is required"}), 400

    try:
        row = db.session.execute(text(f"""
            SELECT steam_id FROM {prefix}player_auth
            WHERE UPPER(auth_code) = UPPER(:code)
            LIMIT 1
        """), {"code": code}).first()
        if not row:
            logger.info("[Auth] Login with unknown auth code")
            return jsonify({"error": "Invalid auth code"}), 401

        steam_id = str(row.steam_id)
        db.session.execute(text(f"""
            UPDATE {prefix}player_auth SET last_used_at_utc = :now WHERE steam_id = :steam_id
        """), {"now": db_timestamp(), "steam_id": steam_id})
        db.session.commit()

        player_name = None
        stats_id = steam_id_number(steam_id)
        if stats_id is not None and has_player_stats_table(db.engine):
            player_name = db.session.execute(text(f"""
                SELECT Name FROM {PLAYER_STATS_TABLE} WHERE SteamId = :steam_id LIMIT 1
            """), {"steam_id": stats_id}).scalar()

        logger.info(f"[Auth] Player {steam_id} logged in")
        return jsonify({
            "success": True,
            "steamId": steam_id,
            "playerName": player_name or "Unknown",
            "token": code,
        })
    except Exception as e:
        return _error(e, "[Auth] Login")


# Admin-Login
@api_bp.route("/api/login", methods=["POST"])
def login_api():
    try:
        data = request_data()
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "Missing credentials"}), 400

        query = text(f"SELECT id, password_hash, is_admin FROM {_prefix()}web_users WHERE username = :username AND active = 1")
        result = db.session.execute(query, {"username": username}).fetchone()

        if not result:
            return jsonify({"error": "Invalid credentials"}), 401

        uid, hashed, is_admin = result
        if bcrypt.checkpw(password.encode(), hashed.encode()):
            logger.info(f"[Auth] Admin user {username} logged in")
            return jsonify({
                "id": uid,
                "username": username,
                "is_admin": bool(is_admin)
            })

        return jsonify({"error": "Invalid credentials"}), 401

    except Exception as e:
        return _error(e, "[Auth] Admin login")


#####################################################################
# App-Start
#####################################################################
if __name__ == "__main__":
    from waitress import serve
    from databases import initialize_database

    app = create_app()
    print("Starting Faction Web Manager (Waitress)...")
    with app.app_context():
        # Fehlende Tabellen anlegen
        initialize_database(db.engine)

    # Waitress starten
    serve(app, host=app.config["HOST"], port=app.config["PORT"], threads=8)
