import logging
from datetime import datetime, timedelta, timezone
from sqlalchemy import inspect, text
from models import db, OWNED_TABLES, PLAYER_STATS_TABLE

logger = logging.getLogger("databases")

# Format für DATETIME-Parameter; MySQL und SQLite vergleichen es gleich
DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now():
    """Aktuelle Zeit in UTC, ohne tzinfo (so wie sie in DATETIME-Spalten liegt)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def db_timestamp(dt=None, offset_seconds=0):
    """
    Formatiert einen Zeitpunkt als DATETIME-String für SQL-Parameter.
    Ersetzt NOW() in den Statements, damit sie auf MySQL und SQLite laufen.
    """
    dt = dt or utc_now()
    if offset_seconds:
        dt = dt + timedelta(seconds=offset_seconds)
    return dt.strftime(DB_TIMESTAMP_FORMAT)


def iso_utc(dt=None):
    # ISO 8601 mit Z, wird vom Plugin (C# DateTime) so erwartet
    dt = dt or utc_now()
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


# Fehlende Plugin-Tabellen anlegen
def initialize_database(engine):
    """
    Legt alle Tabellen mit Prefix an, die noch fehlen.
    Die Statistik-Tabelle des Stats-Plugins wird nie angefasst.
    Gibt die Namen der neu angelegten Tabellen zurück.
    """
    inspector = inspect(engine)
    existing = set(inspector.get_table_names())
    missing = [table for table in OWNED_TABLES if table.name not in existing]
    if not missing:
        logger.info(f"Alle {len(OWNED_TABLES)} Tabellen existieren bereits in {engine.url.database}.")
        return []

    db.metadata.create_all(bind=engine, tables=missing)
    created = [table.name for table in missing]
    for name in created:
        logger.info(f"Tabelle '{name}' wurde in {engine.url.database} angelegt.")
    return created


def has_player_stats_table(engine):
    try:
        return inspect(engine).has_table(PLAYER_STATS_TABLE)
    except Exception as e:
        logger.warning(f"Konnte {PLAYER_STATS_TABLE} nicht prüfen: {e}")
        return False


def check_connection(session):
    session.execute(text("SELECT 1"))


def start_quest_progress(session, prefix, player_id, quest_id, objective_progress_json):
    """
    Startet (oder reaktiviert) eine Quest für einen Spieler.
    Gibt False zurück, wenn die Quest für den Spieler bereits aktiv ist.
    """
    existing = session.execute(text(f"""
        SELECT id, is_active FROM {prefix}quest_progress
        WHERE player_id = :player_id AND quest_id = :quest_id
        LIMIT 1
    """), {"player_id": player_id, "quest_id": quest_id}).first()

    now = db_timestamp()
    if existing and existing.is_active:
        return False

    if existing:
        logger.info(f"[Quest] Reactivating quest {quest_id} for player {player_id}")
        session.execute(text(f"""
            UPDATE {prefix}quest_progress
            SET is_active = 1, is_ready_to_complete = 0, objective_progress = :progress,
                started_at = :now, updated_at = :now
            WHERE id = :id
        """), {"progress": objective_progress_json, "now": now, "id": existing.id})
    else:
        session.execute(text(f"""
            INSERT INTO {prefix}quest_progress
                (player_id, quest_id, is_active, is_ready_to_complete, objective_progress, started_at, updated_at)
            VALUES (:player_id, :quest_id, 1, 0, :progress, :now, :now)
        """), {"player_id": player_id, "quest_id": quest_id, "progress": objective_progress_json, "now": now})
    return True


def steam_id_number(value):
    """
    SteamId als Zahl für Vergleiche mit der BIGINT-Spalte in PlayerStatsNew,
    damit der Primärschlüssel genutzt wird. None, wenn es keine Zahl ist.
    """
    text_value = str(value).strip() if value is not None else ""
    return int(text_value) if text_value.isdigit() else None
