"""
Module: stock_kernel.db.triggers
Responsibility: Installing, verifying and removing PostgreSQL immutability
    triggers.  Database-level complement to the ORM listeners in
    db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (PostgreSQL only):
    - stock_entries: category, key, quantity, submitted_at never change;
      rows are never deleted.
    - removal_logs: rows are never updated or deleted.
    - finished_products: fulfilled_quantity never changes; never deleted.
    - audit_events: rows are never updated or deleted.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaced by SQLAlchemy as
      InternalError / DBAPIError).

Audit relevance:
    Catches raw SQL, bulk UPDATE statements and direct psql access that the
    ORM listeners cannot see.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

from stock_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

_FUNCTIONS: dict[str, str] = {
    "stock_entry_write_once": """
CREATE OR REPLACE FUNCTION stock_entry_write_once() RETURNS trigger AS $$
BEGIN
    IF TG_OP = 'DELETE' THEN
        RAISE EXCEPTION 'HARD_DELETE_FORBIDDEN: stock entry % cannot be deleted', OLD.id;
    END IF;
    IF NEW.quantity IS DISTINCT FROM OLD.quantity
       OR NEW.key IS DISTINCT FROM OLD.key
       OR NEW.category IS DISTINCT FROM OLD.category
       OR NEW.submitted_at IS DISTINCT FROM OLD.submitted_at THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: stock entry % is write-once', OLD.id;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
""",
    "append_only_row": """
CREATE OR REPLACE FUNCTION append_only_row() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: % rows are append-only (%)', TG_TABLE_NAME, TG_OP;
END;
$$ LANGUAGE plpgsql;
""",
    "finished_product_write_once": """
CREATE OR REPLACE FUNCTION finished_product_write_once() RETURNS trigger AS $$
BEGIN
    IF TG_OP = 'DELETE' THEN
        RAISE EXCEPTION 'HARD_DELETE_FORBIDDEN: finished product % cannot be deleted', OLD.id;
    END IF;
    IF NEW.fulfilled_quantity IS DISTINCT FROM OLD.fulfilled_quantity THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: finished product % quantity is frozen', OLD.id;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
""",
}

# trigger name -> (table, timing/events, function)
_TRIGGERS: dict[str, tuple[str, str, str]] = {
    "trg_stock_entry_write_once": (
        "stock_entries", "BEFORE UPDATE OR DELETE", "stock_entry_write_once",
    ),
    "trg_removal_log_append_only": (
        "removal_logs", "BEFORE UPDATE OR DELETE", "append_only_row",
    ),
    "trg_finished_product_write_once": (
        "finished_products", "BEFORE UPDATE OR DELETE", "finished_product_write_once",
    ),
    "trg_audit_event_append_only": (
        "audit_events", "BEFORE UPDATE OR DELETE", "append_only_row",
    ),
}

ALL_TRIGGER_NAMES = tuple(_TRIGGERS)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install all immutability triggers (idempotent).

    Preconditions: engine dialect is PostgreSQL and the tables exist.
    """
    with engine.begin() as conn:
        for sql in _FUNCTIONS.values():
            conn.execute(text(sql))
        for name, (table, events, function) in _TRIGGERS.items():
            conn.execute(text(f"DROP TRIGGER IF EXISTS {name} ON {table}"))
            conn.execute(text(
                f"CREATE TRIGGER {name} {events} ON {table} "
                f"FOR EACH ROW EXECUTE FUNCTION {function}()"
            ))
    logger.info("immutability_triggers_installed", extra={"count": len(_TRIGGERS)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Drop all immutability triggers and their functions. FOR TESTING ONLY."""
    with engine.begin() as conn:
        for name, (table, _events, _function) in _TRIGGERS.items():
            conn.execute(text(f"DROP TRIGGER IF EXISTS {name} ON {table}"))
        for function in _FUNCTIONS:
            conn.execute(text(f"DROP FUNCTION IF EXISTS {function}() CASCADE"))


def installed_triggers(engine: Engine) -> set[str]:
    """Return the names of immutability triggers present in the database."""
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE NOT tgisinternal AND tgname = ANY(:names)"
            ),
            {"names": list(ALL_TRIGGER_NAMES)},
        )
        return {row[0] for row in rows}
