"""SQL persistence: SQLAlchemy async models, repositories and Alembic migrations."""
