import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models import Product


logger = logging.getLogger(__name__)

DEMO_PRODUCTS = (
    ('Arabic Reading Workbook', Decimal('20.00')),
    ('Tajweed Flash Cards', Decimal('15.00')),
    ('Monthly Tutoring Pass', Decimal('120.00')),
    ('Handwriting Practice Pack', Decimal('9.50')),
)


def list_products(db: Session, *, include_inactive: bool = False) -> list[Product]:
    query = db.query(Product)
    if not include_inactive:
        query = query.filter(Product.active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(db: Session, product_id: int) -> Product:
    row = db.query(Product).filter(Product.id == product_id).first()
    if not row or not row.active:
        raise NotFoundError('Product not found', product_id=int(product_id))
    return row


def create_product(db: Session, *, name: str, price: Decimal, active: bool = True) -> Product:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationError('Product name is required', field='name')
    amount = Decimal(price)
    if amount < 0:
        raise ValidationError('Product price must not be negative', field='price')
    row = Product(name=clean_name, price=amount.quantize(Decimal('0.01')), active=active)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_default_products(db: Session) -> dict:
    if db.query(Product).count() > 0:
        return {'seeded': False, 'reason': 'catalog_not_empty'}
    for name, price in DEMO_PRODUCTS:
        db.add(Product(name=name, price=price, active=True))
    db.commit()
    logger.info('catalog_seeded count=%s', len(DEMO_PRODUCTS))
    return {'seeded': True, 'count': len(DEMO_PRODUCTS)}
