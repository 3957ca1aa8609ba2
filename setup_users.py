import sys
import bcrypt
from sqlalchemy import text
from app import create_app
from models import db, TABLE_PREFIX

# === KONFIGURATION ===
USERNAME = "admin"       # Benutzername, dessen Passwort gesetzt werden soll
NEW_PASSWORD = "passAdmin"  # Neues Passwort im Klartext


# === FUNKTION: Passwort erstellen oder aktualisieren ===
def setup_admin_user(session, username, plain_password):
    # Passwort hashen
    hashed_password = bcrypt.hashpw(plain_password.encode(), bcrypt.gensalt()).decode()

    # Prüfen, ob der Benutzer bereits existiert
    user_exists = session.execute(
        text(f"SELECT id FROM {TABLE_PREFIX}web_users WHERE username = :username"),
        {"username": username}
    ).first()

    if user_exists:
        # Benutzer existiert -> Passwort aktualisieren
        session.execute(
            text(f"UPDATE {TABLE_PREFIX}web_users SET password_hash = :hash WHERE username = :username"),
            {"hash": hashed_password, "username": username}
        )
        print(f"✅ Passwort für Benutzer '{username}' wurde erfolgreich aktualisiert.")
    else:
        # Benutzer existiert nicht -> Neu anlegen
        session.execute(
            text(f"INSERT INTO {TABLE_PREFIX}web_users (username, password_hash, is_admin, active) "
                 f"VALUES (:username, :hash, 1, 1)"),
            {"username": username, "hash": hashed_password}
        )
        print(f"✅ Benutzer '{username}' wurde erstellt und Passwort gesetzt.")

    session.commit()


# === Hauptfunktion aufrufen ===
if __name__ == "__main__":
    # Aufruf: python setup_users.py [username] [password]
    username = sys.argv[1] if len(sys.argv) > 1 else USERNAME
    password = sys.argv[2] if len(sys.argv) > 2 else NEW_PASSWORD
    app = create_app()
    with app.app_context():
        try:
            setup_admin_user(db.session, username, password)
        except Exception as e:
            db.session.rollback()
            print(f"❌ Fehler beim Einrichten des Admin-Benutzers: {e}")
            sys.exit(1)
