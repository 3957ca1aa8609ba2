from app import create_app
from models import db
from databases import initialize_database

app = create_app()

with app.app_context():
    created = initialize_database(db.engine)
    if created:
        print(f"✅ Tabellen angelegt: {', '.join(created)}")
    else:
        print("✅ Alle Tabellen existieren bereits.")
