# create_db.py - Create database tables
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent / "backend"
sys.path.insert(0, str(backend_dir))

from sqlalchemy import inspect

from reelforge.core.config import settings
from reelforge.db import Base, create_db_engine
from reelforge import models  # noqa: F401  registers every table

engine = create_db_engine(settings.SQLALCHEMY_DATABASE_URI)

print("Creating database tables...")
Base.metadata.create_all(bind=engine)

tables = inspect(engine).get_table_names()
print(f"Created {len(tables)} tables:")
for table in tables:
    print(f"   - {table}")
