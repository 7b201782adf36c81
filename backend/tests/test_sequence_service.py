import unittest
from datetime import date

from procure import create_app
from procure.extensions import db
from procure.models import DocumentSequence
from procure.services.sequence_service import (
    DocumentSequenceError,
    _allocate,
    next_order_number,
)


class SequenceServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "EXPIRATION_SWEEP_ENABLED": False,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(DocumentSequence).delete()
        db.session.commit()

    def test_first_number_of_the_day(self):
        number = next_order_number(day=date(2026, 10, 19))
        db.session.commit()
        self.assertEqual(number, "ORD-20261019-0001")

    def test_numbers_increase_within_a_day(self):
        day = date(2026, 10, 19)
        numbers = [next_order_number(day=day) for _ in range(3)]
        db.session.commit()
        self.assertEqual(numbers, ["ORD-20261019-0001", "ORD-20261019-0002", "ORD-20261019-0003"])

    def test_each_day_restarts(self):
        self.assertEqual(next_order_number(day=date(2026, 10, 19)), "ORD-20261019-0001")
        self.assertEqual(next_order_number(day=date(2026, 10, 20)), "ORD-20261020-0001")
        db.session.commit()
        self.assertEqual(db.session.query(DocumentSequence).count(), 2)

    def test_padding_grows_past_width(self):
        db.session.add(DocumentSequence(document_type="ORDER", scope_key="20261019", next_number=10000))
        db.session.commit()
        self.assertEqual(next_order_number(day=date(2026, 10, 19)), "ORD-20261019-10000")

    def test_rollback_releases_number(self):
        day = date(2026, 10, 19)
        next_order_number(day=day)
        db.session.rollback()
        self.assertEqual(next_order_number(day=day), "ORD-20261019-0001")

    def test_requires_scope(self):
        with self.assertRaises(DocumentSequenceError):
            _allocate("ORDER", "")
        with self.assertRaises(DocumentSequenceError):
            _allocate("", "20261019")


if __name__ == "__main__":
    unittest.main()
