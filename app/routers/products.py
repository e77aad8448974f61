from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.route_logging import EndpointNameRoute
from app.services.catalog_service import list_products


router = APIRouter(prefix='/api/products', tags=['Products'], route_class=EndpointNameRoute)


@router.get('')
def product_list(db: Session = Depends(get_db)):
    return [
        {'id': row.id, 'name': row.name, 'price': str(row.price)}
        for row in list_products(db)
    ]
