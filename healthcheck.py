import sys
from datetime import timedelta
from decimal import Decimal

import httpx
from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import inspect, text

from app.config import settings
from app.core.time_provider import default_time_provider
from app.db import Base, SessionLocal, engine
from app.models import LearningSession, Product
from app.services.payment_service import authorize_payment, get_payment_authorizer, void_payment
from app.services.scheduling_service import find_conflicts


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity_and_write():
    with engine.begin() as conn:
        conn.execute(text('SELECT 1'))
        conn.execute(text('CREATE TABLE IF NOT EXISTS _healthcheck_probe (id INTEGER PRIMARY KEY, note TEXT)'))
        conn.execute(text("INSERT INTO _healthcheck_probe (note) VALUES ('probe')"))
        conn.execute(text("DELETE FROM _healthcheck_probe WHERE note='probe'"))
        conn.execute(text('DROP TABLE IF EXISTS _healthcheck_probe'))
    return 'connect + write ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_tables_present():
    existing = set(inspect(engine).get_table_names())
    missing = sorted(set(Base.metadata.tables) - existing)
    if missing:
        raise RuntimeError(f'Missing tables: {missing}')
    return f'tables={len(Base.metadata.tables)}'


def check_catalog_not_empty():
    db = SessionLocal()
    try:
        count = db.query(Product).filter(Product.active.is_(True)).count()
        if count == 0:
            raise RuntimeError('No active products (run bootstrap.py)')
        return f'active_products={count}'
    finally:
        db.close()


def check_conflict_query():
    db = SessionLocal()
    try:
        start = default_time_provider.utc_now()
        find_conflicts(db, 0, start, start + timedelta(hours=1))
        _ = db.query(LearningSession).limit(1).all()
        return 'query ok'
    finally:
        db.close()


def check_payment_authorizer():
    authorizer = get_payment_authorizer()
    result = authorize_payment('healthcheck_probe', Decimal('1.00'), authorizer=authorizer)
    void_payment(result.reference, authorizer=authorizer)
    return f'{type(authorizer).__name__} authorize + void ok'


def check_http_health():
    res = httpx.get(f'{settings.app_base_url}/health', timeout=8)
    if res.status_code != 200:
        raise RuntimeError(f'HTTP {res.status_code} from {settings.app_base_url}/health')
    return 'GET /health ok'


def main():
    checks = [
        ('Database connectivity and write access', check_db_connectivity_and_write),
        ('Alembic migration status at head', check_alembic_head),
        ('Mapped tables present', check_tables_present),
        ('Catalog has active products', check_catalog_not_empty),
        ('Session conflict query runs', check_conflict_query),
        ('Payment authorizer reachable', check_payment_authorizer),
        ('HTTP health endpoint reachable', check_http_health),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()
