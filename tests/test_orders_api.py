import tempfile
import unittest
from decimal import Decimal
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db import Base, get_db
from app.models import Order, OrderItem, OrderLog, Product
from app.routers import orders as orders_router
from app.routers import products as products_router
from app.services.catalog_service import create_product
from app.services.payment_service import (
    SimulatedPaymentAuthorizer,
    get_payment_authorizer,
    set_payment_authorizer,
)


CLIENT_HEADERS = {'X-Actor-Id': '41', 'X-Actor-Role': 'client'}
OTHER_CLIENT_HEADERS = {'X-Actor-Id': '42', 'X-Actor-Role': 'parent'}
ADMIN_HEADERS = {'X-Actor-Id': '1', 'X-Actor-Role': 'admin'}


class OrdersApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_orders_api.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        app = FastAPI()
        app.include_router(orders_router.router)
        app.include_router(products_router.router)

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        cls.client = TestClient(app)
        cls._orig_authorizer = get_payment_authorizer()
        set_payment_authorizer(SimulatedPaymentAuthorizer(delay_seconds=0))

    @classmethod
    def tearDownClass(cls):
        set_payment_authorizer(cls._orig_authorizer)
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(OrderLog).delete()
            db.query(OrderItem).delete()
            db.query(Order).delete()
            db.query(Product).delete()
            db.commit()
            self.workbook_id = create_product(db, name='Workbook', price=Decimal('20.00')).id
            self.cards_id = create_product(db, name='Flash Cards', price=Decimal('15.00')).id
        finally:
            db.close()

    def _toggle(self, product_id, headers=CLIENT_HEADERS):
        return self.client.post('/api/orders/cart/toggle', json={'product_id': product_id}, headers=headers)

    def test_products_are_listed(self):
        response = self.client.get('/api/products')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [(row['name'], row['price']) for row in response.json()],
            [('Flash Cards', '15.00'), ('Workbook', '20.00')],
        )

    def test_cart_toggle_and_place(self):
        cart = self.client.get('/api/orders/cart', headers=CLIENT_HEADERS)
        self.assertEqual(cart.status_code, 200)
        self.assertEqual(cart.json()['status'], 'cart')

        self._toggle(self.workbook_id)
        toggled = self._toggle(self.cards_id)
        self.assertEqual(Decimal(toggled.json()['total_amount']), Decimal('35.00'))
        self.assertEqual(len(toggled.json()['items']), 2)

        placed = self.client.post('/api/orders/cart/place', json={'card_token': 'tok_visa'}, headers=CLIENT_HEADERS)
        self.assertEqual(placed.status_code, 201)
        body = placed.json()
        self.assertEqual(body['status'], 'placed')
        self.assertEqual(body['id'], cart.json()['id'])
        self.assertIsNotNone(body['placed_at'])

        listed = self.client.get('/api/orders', headers=CLIENT_HEADERS)
        self.assertEqual([row['id'] for row in listed.json()], [body['id']])

        fresh_cart = self.client.get('/api/orders/cart', headers=CLIENT_HEADERS).json()
        self.assertNotEqual(fresh_cart['id'], body['id'])
        self.assertEqual(fresh_cart['items'], [])

    def test_empty_cart_and_declined_card(self):
        empty = self.client.post('/api/orders/cart/place', json={'card_token': 'tok_visa'}, headers=CLIENT_HEADERS)
        self.assertEqual(empty.status_code, 422)
        self.assertEqual(empty.json()['detail']['kind'], 'empty_cart')

        self._toggle(self.workbook_id)
        declined = self.client.post('/api/orders/cart/place', json={'card_token': 'decline_me'}, headers=CLIENT_HEADERS)
        self.assertEqual(declined.status_code, 402)
        self.assertEqual(declined.json()['detail']['reason'], 'declined')

        cart = self.client.get('/api/orders/cart', headers=CLIENT_HEADERS).json()
        self.assertEqual(cart['status'], 'cart')
        self.assertEqual(len(cart['items']), 1)

    def test_remove_item_and_trash(self):
        toggled = self._toggle(self.workbook_id).json()
        self._toggle(self.cards_id)
        item_id = [item['id'] for item in toggled['items'] if item['product_id'] == self.workbook_id][0]

        removed = self.client.delete(f'/api/orders/cart/items/{item_id}', headers=CLIENT_HEADERS)
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(Decimal(removed.json()['total_amount']), Decimal('15.00'))

        foreign = self.client.delete(f'/api/orders/cart/items/{item_id}', headers=OTHER_CLIENT_HEADERS)
        self.assertEqual(foreign.status_code, 403)

        trashed = self.client.post('/api/orders/cart/trash', headers=CLIENT_HEADERS)
        self.assertEqual(trashed.status_code, 200)
        self.assertEqual(trashed.json()['items'], [])
        self.assertEqual(Decimal(trashed.json()['total_amount']), Decimal('0'))

    def test_unknown_product_is_not_found(self):
        response = self._toggle(999999)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['detail']['kind'], 'not_found')

    def test_advance_and_timeline(self):
        self._toggle(self.workbook_id)
        order_id = self.client.post(
            '/api/orders/cart/place',
            json={'card_token': 'tok_visa'},
            headers=CLIENT_HEADERS,
        ).json()['id']

        advanced = self.client.post(f'/api/orders/{order_id}/advance', headers=ADMIN_HEADERS)
        self.assertEqual(advanced.status_code, 200)
        self.assertEqual(advanced.json()['status'], 'processing')

        foreign = self.client.get(f'/api/orders/{order_id}', headers=OTHER_CLIENT_HEADERS)
        self.assertEqual(foreign.status_code, 403)

        timeline = self.client.get(f'/api/orders/{order_id}/timeline', headers=CLIENT_HEADERS)
        self.assertEqual(timeline.status_code, 200)
        steps = timeline.json()
        self.assertEqual([step['status'] for step in steps], ['placed', 'processing', 'shipped', 'delivered'])
        self.assertEqual([step['pending'] for step in steps], [False, False, True, True])

        for _ in range(2):
            self.client.post(f'/api/orders/{order_id}/advance', headers=ADMIN_HEADERS)
        final = self.client.post(f'/api/orders/{order_id}/advance', headers=ADMIN_HEADERS)
        self.assertEqual(final.status_code, 422)
        self.assertEqual(final.json()['detail']['kind'], 'invalid_state')

    def test_missing_identity_is_unauthorized(self):
        self.assertEqual(self.client.get('/api/orders/cart').status_code, 401)


if __name__ == '__main__':
    unittest.main()
