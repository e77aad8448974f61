import tempfile
import threading
import unittest
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.errors import ConflictError, InvalidStateError, TransientStoreError
from app.core.locks import acquire_database_lock, keyed_lock
from app.db import Base, transaction
from app.models import Order, OrderItem, Product


class TransactionScopeTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_transaction_scope.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        self.db = self._session_factory()
        self.db.query(OrderItem).delete()
        self.db.query(Order).delete()
        self.db.query(Product).delete()
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_commit_on_success(self):
        with transaction(self.db):
            self.db.add(Product(name='Notebook', price=Decimal('3.00'), active=True))
        self.assertEqual(self.db.query(Product).count(), 1)

    def test_domain_error_rolls_back_and_propagates(self):
        with self.assertRaises(InvalidStateError):
            with transaction(self.db):
                self.db.add(Product(name='Notebook', price=Decimal('3.00'), active=True))
                self.db.flush()
                raise InvalidStateError('stop')
        self.assertEqual(self.db.query(Product).count(), 0)

    def test_integrity_error_becomes_conflict(self):
        product = Product(name='Notebook', price=Decimal('3.00'), active=True)
        order = Order(owner_id=7, status_id=0, total_amount=Decimal('0.00'), created_at=datetime(2026, 1, 1))
        self.db.add_all([product, order])
        self.db.commit()

        with self.assertRaises(ConflictError):
            with transaction(self.db):
                for _ in range(2):
                    self.db.add(
                        OrderItem(
                            order_id=order.id,
                            product_id=product.id,
                            unit_price=Decimal('3.00'),
                            line_total=Decimal('3.00'),
                        )
                    )
                self.db.flush()
        self.assertEqual(self.db.query(OrderItem).count(), 0)

    def test_database_lock_is_a_noop_outside_postgres(self):
        with transaction(self.db):
            acquire_database_lock(self.db, 'order', 1)


class KeyedLockTests(unittest.TestCase):
    def test_same_key_times_out_while_held(self):
        entered = threading.Event()
        release = threading.Event()

        def holder():
            with keyed_lock('order', 99):
                entered.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            self.assertTrue(entered.wait(timeout=5))
            with self.assertRaises(TransientStoreError):
                with keyed_lock('order', 99, timeout=0.05):
                    pass
            with keyed_lock('order', 100, timeout=0.05):
                pass
            with keyed_lock('teacher', 99, timeout=0.05):
                pass
        finally:
            release.set()
            thread.join(timeout=5)

        with keyed_lock('order', 99, timeout=0.05):
            pass


if __name__ == '__main__':
    unittest.main()
