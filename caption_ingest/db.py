from typing import Dict, Sequence, Tuple

from sqlalchemy import create_engine, inspect

from .config import settings


REQUIRED_TABLES: Sequence[str] = (
    "sessions",
    "transcriptions",
    "transcription_failures",
)

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_timeout=settings.db_pool_timeout_s,
)


def _format_version(info) -> str:
    if not info:
        return "unknown"
    return ".".join(str(part) for part in info)


def fetch_db_info() -> Dict[str, object]:
    with engine.connect() as conn:
        tables = set(inspect(conn).get_table_names())
        server_version = _format_version(conn.dialect.server_version_info)
        dialect = conn.dialect.name

    return {
        "dialect": dialect,
        "server_version": server_version,
        "tables": {name: name in tables for name in REQUIRED_TABLES},
    }


def validate_schema() -> Tuple[bool, str]:
    info = fetch_db_info()
    missing = [name for name, present in info["tables"].items() if not present]
    if missing:
        return False, (
            f"Database schema incomplete: missing tables {', '.join(missing)}; "
            "run `alembic upgrade head`"
        )
    return True, "ok"
