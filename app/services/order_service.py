from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.audit import AuditEntry, emit_audit
from app.core.access import Actor, require_access
from app.core.errors import AuthorizationError, EmptyCartError, InvalidStateError, ValidationError
from app.core.locks import acquire_database_lock, keyed_lock
from app.core.time_provider import TimeProvider, default_time_provider
from app.db import transaction
from app.models import Order, OrderItem, OrderLog, OrderStatus
from app.services.catalog_service import get_product
from app.services.payment_service import PaymentAuthorizer, authorize_payment, void_payment


logger = logging.getLogger(__name__)

_ORDER_SCOPE = 'order'
_CART_OWNER_SCOPE = 'cart_owner'
_ZERO = Decimal('0.00')


def _load_order(db: Session, order_id: int, actor: Actor, *, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    row = query.first()
    require_access(actor, row)
    return row


def _require_cart(order: Order) -> None:
    if not order.is_cart:
        raise InvalidStateError('items of a placed order cannot be changed', order_id=order.id, status_id=order.status_id)


def get_order_items(db: Session, order_id: int) -> list[OrderItem]:
    return (
        db.query(OrderItem)
        .filter(OrderItem.order_id == order_id)
        .order_by(OrderItem.id.asc())
        .all()
    )


def get_order_logs(db: Session, order_id: int) -> list[OrderLog]:
    return (
        db.query(OrderLog)
        .filter(OrderLog.order_id == order_id)
        .order_by(OrderLog.created_at.asc(), OrderLog.id.asc())
        .all()
    )


def _recompute_total(db: Session, order: Order) -> Decimal:
    # The one place total_amount is written after an item mutation.
    db.flush()
    total = sum((Decimal(item.line_total) for item in get_order_items(db, order.id)), _ZERO)
    order.total_amount = total
    return total


def _append_log(db: Session, order: Order, status: OrderStatus, now: datetime) -> OrderLog:
    log = OrderLog(order_id=order.id, status_id=int(status), created_at=now)
    db.add(log)
    return log


def _status_audit(order: Order, actor: Actor, now: datetime) -> AuditEntry:
    return AuditEntry(
        entity='order',
        entity_id=int(order.id),
        status=order.status.name.lower(),
        occurred_at=now,
        actor_id=actor.user_id,
        data={'status_id': int(order.status_id)},
    )


def get_order(db: Session, order_id: int, *, actor: Actor) -> Order:
    return _load_order(db, order_id, actor)


def list_orders(db: Session, *, actor: Actor, include_cart: bool = False) -> list[Order]:
    query = db.query(Order).filter(Order.owner_id == actor.user_id)
    if not include_cart:
        query = query.filter(Order.status_id != int(OrderStatus.CART))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_or_create_cart(
    db: Session,
    *,
    actor: Actor,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    if actor.user_id <= 0:
        raise AuthorizationError()
    with keyed_lock(_CART_OWNER_SCOPE, actor.user_id):
        with transaction(db):
            acquire_database_lock(db, _CART_OWNER_SCOPE, actor.user_id)
            cart = (
                db.query(Order)
                .filter(Order.owner_id == actor.user_id, Order.status_id == int(OrderStatus.CART))
                .order_by(Order.id.asc())
                .first()
            )
            if cart is None:
                now = time_provider.utc_now()
                cart = Order(
                    owner_id=actor.user_id,
                    status_id=int(OrderStatus.CART),
                    total_amount=_ZERO,
                    created_at=now,
                    updated_at=now,
                )
                db.add(cart)
                db.flush()
                logger.info('cart_created', extra={'order_id': cart.id, 'owner_id': actor.user_id})
        db.refresh(cart)
    return cart


def remove_item(
    db: Session,
    item_id: int,
    *,
    actor: Actor,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    item = db.query(OrderItem).filter(OrderItem.id == item_id).first()
    if item is None:
        raise AuthorizationError()
    order_id = int(item.order_id)
    with keyed_lock(_ORDER_SCOPE, order_id):
        with transaction(db):
            acquire_database_lock(db, _ORDER_SCOPE, order_id)
            order = _load_order(db, order_id, actor, for_update=True)
            _require_cart(order)
            _delete_item(db, order, item_id, time_provider.utc_now())
        db.refresh(order)
    return order


def _delete_item(db: Session, order: Order, item_id: int, now: datetime) -> None:
    deleted = (
        db.query(OrderItem)
        .filter(OrderItem.id == item_id, OrderItem.order_id == order.id)
        .delete(synchronize_session='fetch')
    )
    if not deleted:
        raise InvalidStateError('item is no longer in the cart', order_id=order.id, item_id=int(item_id))
    total = _recompute_total(db, order)
    order.updated_at = now
    logger.info('cart_item_removed', extra={'order_id': order.id, 'item_id': int(item_id), 'total': str(total)})


def toggle_item(
    db: Session,
    order_id: int,
    product_id: int,
    *,
    actor: Actor,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    with keyed_lock(_ORDER_SCOPE, order_id):
        with transaction(db):
            acquire_database_lock(db, _ORDER_SCOPE, order_id)
            order = _load_order(db, order_id, actor, for_update=True)
            _require_cart(order)
            now = time_provider.utc_now()
            existing = (
                db.query(OrderItem)
                .filter(OrderItem.order_id == order.id, OrderItem.product_id == int(product_id))
                .first()
            )
            if existing is not None:
                # Removal works even for products retired since they were added.
                _delete_item(db, order, existing.id, now)
            else:
                product = get_product(db, product_id)
                price = Decimal(product.price)
                db.add(
                    OrderItem(
                        order_id=order.id,
                        product_id=product.id,
                        unit_price=price,
                        line_total=price,
                        quantity=1,
                        created_at=now,
                    )
                )
                total = _recompute_total(db, order)
                order.updated_at = now
                logger.info(
                    'cart_item_added',
                    extra={'order_id': order.id, 'product_id': product.id, 'total': str(total)},
                )
        db.refresh(order)
    return order


def trash_cart(
    db: Session,
    order_id: int,
    *,
    actor: Actor,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    with keyed_lock(_ORDER_SCOPE, order_id):
        with transaction(db):
            acquire_database_lock(db, _ORDER_SCOPE, order_id)
            order = _load_order(db, order_id, actor, for_update=True)
            _require_cart(order)
            removed = (
                db.query(OrderItem)
                .filter(OrderItem.order_id == order.id)
                .delete(synchronize_session='fetch')
            )
            _recompute_total(db, order)
            order.updated_at = time_provider.utc_now()
        db.refresh(order)
    logger.info('cart_trashed', extra={'order_id': order.id, 'removed_items': removed})
    return order


def place_order(
    db: Session,
    order_id: int,
    card_token: str,
    *,
    actor: Actor,
    authorizer: PaymentAuthorizer | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    """Turn the cart into a placed order.

    Payment is authorized before the order row is locked so a slow gateway does
    not block other writers. The locked phase re-checks the cart and only then
    writes the status and log entry; if it fails the authorization is voided.
    """
    if not (card_token or '').strip():
        raise ValidationError('card_token is required', field='card_token')

    order = _load_order(db, order_id, actor)
    _require_cart(order)
    items = get_order_items(db, order.id)
    if not items:
        raise EmptyCartError(order_id=order.id)
    amount = Decimal(order.total_amount)
    # Release the read transaction before the external call.
    db.rollback()

    payment = authorize_payment(card_token, amount, authorizer=authorizer)
    try:
        with keyed_lock(_ORDER_SCOPE, order_id):
            with transaction(db):
                acquire_database_lock(db, _ORDER_SCOPE, order_id)
                order = _load_order(db, order_id, actor, for_update=True)
                _require_cart(order)
                if not get_order_items(db, order.id):
                    raise EmptyCartError(order_id=order.id)
                if Decimal(order.total_amount) != amount:
                    raise InvalidStateError(
                        'cart changed during checkout',
                        order_id=order.id,
                        authorized_amount=str(amount),
                    )
                now = time_provider.utc_now()
                order.status_id = int(OrderStatus.PLACED)
                order.payment_reference = payment.reference
                order.placed_at = now
                order.updated_at = now
                _append_log(db, order, OrderStatus.PLACED, now)
            db.refresh(order)
    except Exception:
        void_payment(payment.reference, authorizer=authorizer)
        raise

    logger.info('order_placed', extra={'order_id': order.id, 'owner_id': order.owner_id, 'total': str(amount)})
    emit_audit([_status_audit(order, actor, now)])
    return order


def advance_status(
    db: Session,
    order_id: int,
    *,
    actor: Actor,
    time_provider: TimeProvider = default_time_provider,
) -> Order:
    with keyed_lock(_ORDER_SCOPE, order_id):
        with transaction(db):
            acquire_database_lock(db, _ORDER_SCOPE, order_id)
            order = _load_order(db, order_id, actor, for_update=True)
            if order.is_cart:
                raise InvalidStateError('a cart must be placed before it can advance', order_id=order.id)
            if order.status >= OrderStatus.terminal():
                raise InvalidStateError('order is already in its final status', order_id=order.id, status_id=order.status_id)
            next_status = OrderStatus(order.status + 1)
            now = time_provider.utc_now()
            order.status_id = int(next_status)
            order.updated_at = now
            _append_log(db, order, next_status, now)
        db.refresh(order)

    logger.info('order_status_advanced', extra={'order_id': order.id, 'status_id': order.status_id})
    emit_audit([_status_audit(order, actor, now)])
    return order


def get_order_timeline(db: Session, order_id: int, *, actor: Actor) -> list[dict[str, Any]]:
    """Every post-cart status in order, with the time it was reached or None if pending."""
    order = _load_order(db, order_id, actor)
    reached: dict[int, datetime] = {}
    for log in get_order_logs(db, order.id):
        reached.setdefault(int(log.status_id), log.created_at)
    return [
        {
            'status_id': int(status),
            'status': status.name.lower(),
            'label': status.label,
            'reached_at': reached.get(int(status)),
            'pending': int(status) not in reached,
        }
        for status in OrderStatus
        if status is not OrderStatus.CART
    ]
