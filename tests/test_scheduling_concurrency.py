import tempfile
import threading
import unittest
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.access import Actor
from app.core.errors import ConflictError
from app.core.time_provider import TimeProvider
from app.db import Base
from app.models import LearningSession, Role, SessionStatus
from app.services.scheduling_service import create_session


class FixedTimeProvider(TimeProvider):
    def __init__(self, fixed_now: datetime):
        self._fixed_now = fixed_now

    def now(self) -> datetime:
        return self._fixed_now


class SchedulingConcurrencyTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_scheduling_concurrency.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(LearningSession).delete()
            db.commit()
        finally:
            db.close()
        self.clock = FixedTimeProvider(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))

    def _race(self, teacher_ids, slots):
        created = []
        conflicts = []
        errors = []
        barrier = threading.Barrier(len(slots))

        def worker(teacher_id, start, end):
            db = self._session_factory()
            try:
                barrier.wait(timeout=5)
                row = create_session(
                    db,
                    actor=Actor(user_id=teacher_id, role=Role.TEACHER),
                    student_id=21,
                    subject_id=31,
                    start_time=start,
                    end_time=end,
                    time_provider=self.clock,
                )
                created.append(row.id)
            except ConflictError as exc:
                conflicts.append(exc)
            except Exception as exc:  # pragma: no cover - test diagnostic path
                errors.append(exc)
            finally:
                db.close()

        threads = [
            threading.Thread(target=worker, args=(teacher_id, start, end))
            for teacher_id, (start, end) in zip(teacher_ids, slots)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=15)
        return created, conflicts, errors

    def test_same_slot_race_books_exactly_once(self):
        slot = (datetime(2026, 3, 3, 10, 0), datetime(2026, 3, 3, 11, 0))
        created, conflicts, errors = self._race([11] * 6, [slot] * 6)

        self.assertFalse(errors, f'errors={errors}')
        self.assertEqual(len(created), 1)
        self.assertEqual(len(conflicts), 5)

        db = self._session_factory()
        try:
            rows = (
                db.query(LearningSession)
                .filter(LearningSession.teacher_id == 11, LearningSession.status == SessionStatus.SCHEDULED.value)
                .all()
            )
            self.assertEqual(len(rows), 1)
        finally:
            db.close()

    def test_overlapping_requests_for_one_teacher_never_both_succeed(self):
        slots = [
            (datetime(2026, 3, 3, 10, 0), datetime(2026, 3, 3, 11, 0)),
            (datetime(2026, 3, 3, 10, 30), datetime(2026, 3, 3, 11, 30)),
        ]
        created, conflicts, errors = self._race([11, 11], slots)

        self.assertFalse(errors, f'errors={errors}')
        self.assertEqual(len(created), 1)
        self.assertEqual(len(conflicts), 1)

    def test_different_teachers_do_not_block_each_other(self):
        slot = (datetime(2026, 3, 3, 10, 0), datetime(2026, 3, 3, 11, 0))
        created, conflicts, errors = self._race([11, 12, 13], [slot] * 3)

        self.assertFalse(errors, f'errors={errors}')
        self.assertFalse(conflicts)
        self.assertEqual(len(created), 3)


if __name__ == '__main__':
    unittest.main()
