from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./lingodyne.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first deploy; create_all() does not alter existing tables
_LATE_COLUMNS = {
	"test_templates": {
		"pass_threshold": "ALTER TABLE test_templates ADD COLUMN pass_threshold FLOAT",
	},
	"user_tests": {
		"version": "ALTER TABLE user_tests ADD COLUMN version INTEGER DEFAULT 1 NOT NULL",
	},
}


def ensure_schema(bind=None) -> list[str]:
	"""Apply lightweight additive migrations. Returns the columns that were added."""
	bind = bind or engine
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	added: list[str] = []
	with bind.begin() as conn:
		for table, columns in _LATE_COLUMNS.items():
			if table not in tables:
				continue
			existing = {c["name"] for c in inspector.get_columns(table)}
			for name, ddl in columns.items():
				if name not in existing:
					conn.exec_driver_sql(ddl)
					added.append(f"{table}.{name}")
	return added
