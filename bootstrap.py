import logging

from app.db import Base, SessionLocal, engine
from app.services.catalog_service import seed_default_products


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('bootstrap')


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        result = seed_default_products(db)
        if result.get('seeded'):
            logger.info('Catalog seeded: %s', result)
        else:
            logger.info('Catalog seed skipped: %s', result)
    finally:
        db.close()


if __name__ == '__main__':
    main()
