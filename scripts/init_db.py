# scripts/init_db.py
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from sqlalchemy import inspect

from app.db import engine, create_db_and_tables


def main() -> None:
    print("Using engine:", engine.url)

    print("Creating SQLModel tables...")
    create_db_and_tables()

    # Show what tables actually exist
    insp = inspect(engine)
    print("Tables now in DB:", insp.get_table_names())


if __name__ == "__main__":
    main()
