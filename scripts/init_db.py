from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.core.access import Actor
from app.core.time_provider import default_time_provider
from app.db import Base, SessionLocal, engine
from app.models import LearningSession, Role
from app.services.catalog_service import list_products, seed_default_products
from app.services.order_service import get_or_create_cart, toggle_item
from app.services.scheduling_service import create_session


DEMO_TEACHER = Actor(user_id=1001, role=Role.TEACHER)
DEMO_CLIENT = Actor(user_id=2001, role=Role.CLIENT)


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    seed_default_products(db)

    if not db.query(LearningSession).first():
        tomorrow = default_time_provider.utc_now().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=1)
        for offset, subject_id in enumerate((1, 2, 1)):
            start = tomorrow + timedelta(hours=offset * 2)
            create_session(
                db,
                actor=DEMO_TEACHER,
                student_id=3001 + offset,
                subject_id=subject_id,
                start_time=start,
                end_time=start + timedelta(minutes=60),
                title=f'Demo lesson {offset + 1}',
            )

    cart = get_or_create_cart(db, actor=DEMO_CLIENT)
    if float(cart.total_amount) == 0:
        for product in list_products(db)[:2]:
            toggle_item(db, cart.id, product.id, actor=DEMO_CLIENT)
finally:
    db.close()

print('DB initialized with sample data.')
