# Overview: Threaded races against a file-backed database for verify and the expiration sweep.

"""
Two workers race for the same state change on a real SQLite file, each in
its own app context and session. Stock must move exactly once.
"""
import os
import tempfile
import threading
import unittest
from datetime import timedelta

from procure import create_app
from procure.errors import StateError
from procure.extensions import db
from procure.models import Order, Product, PurchaseOrder, Staff, Supplier
from procure.models.orders import STATUS_VERIFIED
from procure.models.staff import ROLE_ADMIN, ROLE_STAFF
from procure.services import expiration_service, order_service
from procure.time_utils import utcnow


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "EXPIRATION_SWEEP_ENABLED": False,
            "UPLOAD_FOLDER": os.path.join(self.tmpdir.name, "uploads"),
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            buyer = Staff(fullname="Sam Buyer", email="buyer@procure.test", role=ROLE_STAFF)
            first_admin = Staff(fullname="Ada Admin", email="ada@procure.test", role=ROLE_ADMIN)
            second_admin = Staff(fullname="Cleo Checker", email="cleo@procure.test", role=ROLE_ADMIN)
            supplier = Supplier(name="Concurrent Farms")
            product = Product(name="Milk", unit="liter", current_stock=0, min_qty=0)
            db.session.add_all([buyer, first_admin, second_admin, supplier, product])
            db.session.commit()

            self.buyer_id = buyer.id
            self.admin_ids = [first_admin.id, second_admin.id]
            self.supplier_id = supplier.id
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _pending_order(self, quantity, expiration_date=None):
        item = {"product_id": self.product_id, "quantity": quantity, "unit_cost": 2}
        if expiration_date is not None:
            item["expiration_date"] = expiration_date
        with self.app.app_context():
            order = order_service.create_order(supplier_id=self.supplier_id, items=[item])
            order_service.assign_order(order.id, self.buyer_id)
            order_service.submit_for_review(
                order.id,
                bill_url="/uploads/orders/bill.png",
                submitted_by_staff_id=self.buyer_id,
            )
            return order.id

    def _run_workers(self, targets):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(targets))

        def worker(target):
            with self.app.app_context():
                try:
                    barrier.wait(timeout=5)
                    outcome = target()
                except Exception as exc:
                    outcome = exc
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=worker, args=(target,)) for target in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def _stock(self):
        with self.app.app_context():
            return db.session.get(Product, self.product_id).current_stock

    def test_double_verify_credits_stock_once(self):
        order_id = self._pending_order(quantity=7)

        def verify_as(admin_id):
            return lambda: order_service.verify_order(order_id, verified_by_staff_id=admin_id).id

        results = self._run_workers([verify_as(admin_id) for admin_id in self.admin_ids])

        successes = [r for r in results if r == order_id]
        rejections = [r for r in results if isinstance(r, StateError)]
        self.assertEqual(len(successes), 1, results)
        self.assertEqual(len(rejections), 1, results)
        self.assertEqual(rejections[0].current_status, STATUS_VERIFIED)
        self.assertEqual(self._stock(), 7)

        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(order.status, STATUS_VERIFIED)
            self.assertIn(order.verified_by_staff_id, self.admin_ids)

    def test_double_sweep_debits_stock_once(self):
        order_id = self._pending_order(quantity=6, expiration_date=utcnow() - timedelta(days=1))
        with self.app.app_context():
            order_service.verify_order(order_id, verified_by_staff_id=self.admin_ids[0])
        self.assertEqual(self._stock(), 6)

        results = self._run_workers([expiration_service.run_sweep_once, expiration_service.run_sweep_once])

        for result in results:
            self.assertIsInstance(result, expiration_service.SweepResult)
            self.assertEqual(result.failed, [])
        self.assertEqual(sum(len(r.expired) for r in results), 1)
        self.assertEqual(self._stock(), 0)

        with self.app.app_context():
            batch = db.session.query(PurchaseOrder).filter_by(order_id=order_id).one()
            self.assertTrue(batch.is_expired)
            self.assertEqual(batch.expired_quantity, 6)
            self.assertEqual(batch.remaining_qte, 0)


if __name__ == "__main__":
    unittest.main()
