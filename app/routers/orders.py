from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.errors import DomainError
from app.core.router_guard import http_error, require_actor
from app.db import get_db
from app.route_logging import EndpointNameRoute
from app.models import Order
from app.schemas import CartToggleRequest, PlaceOrderRequest
from app.services.order_service import (
    advance_status,
    get_or_create_cart,
    get_order,
    get_order_items,
    get_order_timeline,
    list_orders,
    place_order,
    remove_item,
    toggle_item,
    trash_cart,
)


router = APIRouter(prefix='/api/orders', tags=['Orders'], route_class=EndpointNameRoute)


def _serialize(db: Session, order: Order) -> dict:
    items = get_order_items(db, order.id)
    return {
        'id': order.id,
        'owner_id': order.owner_id,
        'status_id': order.status_id,
        'status': order.status.name.lower(),
        'total_amount': str(order.total_amount),
        'placed_at': order.placed_at.isoformat() if order.placed_at else None,
        'items': [
            {
                'id': item.id,
                'product_id': item.product_id,
                'unit_price': str(item.unit_price),
                'line_total': str(item.line_total),
                'quantity': item.quantity,
            }
            for item in items
        ],
    }


@router.get('/cart')
def cart(request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = get_or_create_cart(db, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.post('/cart/toggle')
def toggle(payload: CartToggleRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = get_or_create_cart(db, actor=actor)
        order = toggle_item(db, order.id, payload.product_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.delete('/cart/items/{item_id}')
def delete_item(item_id: int, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = remove_item(db, item_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.post('/cart/trash')
def trash(request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = get_or_create_cart(db, actor=actor)
        order = trash_cart(db, order.id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.post('/cart/place', status_code=201)
def place(payload: PlaceOrderRequest, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = get_or_create_cart(db, actor=actor)
        order = place_order(db, order.id, payload.card_token, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.get('')
def list_mine(request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    return [_serialize(db, order) for order in list_orders(db, actor=actor)]


@router.get('/{order_id}')
def get_one(order_id: int, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = get_order(db, order_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)


@router.get('/{order_id}/timeline')
def timeline(order_id: int, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        items = get_order_timeline(db, order_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return [
        {**item, 'reached_at': item['reached_at'].isoformat() if item['reached_at'] else None}
        for item in items
    ]


@router.post('/{order_id}/advance')
def advance(order_id: int, request: Request, db: Session = Depends(get_db)):
    actor = require_actor(request)
    try:
        order = advance_status(db, order_id, actor=actor)
    except DomainError as exc:
        raise http_error(exc) from exc
    return _serialize(db, order)
