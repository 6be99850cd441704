import os
from unittest.mock import patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.services.errors import GatewayError
from app.services.request_store import RequestStore
from app.services.request_workflow import RequestWorkflow
from app.workers.tasks import payments as payments_task

from tests.base import PortalTestBase


class PaymentReconciliationTests(PortalTestBase):
    def _charged(self, db, title="Alteração"):
        req = RequestWorkflow(db).create_request(
            self.client_actor(), request_type_id=self.paid_type_id, title=title, description="x"
        )
        return self.orchestrator(db).request_charge(req.id, self.client_actor())

    def test_paid_charges_are_confirmed_through_same_path(self):
        with self.SessionLocal() as db:
            paid = self._charged(db, "paga")
            open_charge = self._charged(db, "aberta")
            paid_id, open_id = paid.id, open_charge.id
            self.gateway.provider_statuses[paid.txid] = "CONCLUIDA"

            summary = payments_task.run_reconciliation(db, orchestrator=self.orchestrator(db))
            self.assertEqual(summary, {"checked": 2, "confirmed": 1, "failed": 0})
            self.assertEqual(self.gateway.auth_calls[-1], "pix.read")

            store = RequestStore(db)
            self.assertEqual(store.find(paid_id).status, "REQUESTED")
            self.assertEqual(store.find(open_id).status, "PENDING_PAYMENT")
            last = store.audit_entries(paid_id)[-1]
            self.assertEqual(last.details.get("source"), "reconciliation")

    def test_deleted_requests_are_skipped(self):
        with self.SessionLocal() as db:
            charged = self._charged(db)
            self.gateway.provider_statuses[charged.txid] = "CONCLUIDA"
            RequestStore(db).soft_delete(charged.id, self.admin_actor())
            summary = payments_task.run_reconciliation(db, orchestrator=self.orchestrator(db))
            self.assertEqual(summary["checked"], 0)
            self.assertEqual(self.gateway.fetches, [])

    def test_fetch_failure_is_counted_and_others_continue(self):
        with self.SessionLocal() as db:
            first = self._charged(db, "primeira")
            second = self._charged(db, "segunda")
            self.gateway.provider_statuses[second.txid] = "CONCLUIDA"
            failing_txid = first.txid
            original_fetch = self.gateway.fetch_charge

            def flaky_fetch(token, txid, certificate):
                if txid == failing_txid:
                    raise GatewayError("Falha de comunicação com o provedor PIX")
                return original_fetch(token, txid, certificate)

            with patch.object(self.gateway, "fetch_charge", side_effect=flaky_fetch):
                summary = payments_task.run_reconciliation(db, orchestrator=self.orchestrator(db))
            self.assertEqual(summary, {"checked": 2, "confirmed": 1, "failed": 1})

    def test_auth_failure_aborts_round(self):
        with self.SessionLocal() as db:
            self._charged(db)
            self.gateway.auth_error = self.gateway_auth_failure()
            summary = payments_task.run_reconciliation(db, orchestrator=self.orchestrator(db))
            self.assertEqual(summary["confirmed"], 0)
            self.assertEqual(summary["failed"], 1)

    def test_nothing_outstanding_skips_provider(self):
        with self.SessionLocal() as db:
            summary = payments_task.run_reconciliation(db, orchestrator=self.orchestrator(db))
            self.assertEqual(summary, {"checked": 0, "confirmed": 0, "failed": 0})
            self.assertEqual(self.gateway.auth_calls, [])
