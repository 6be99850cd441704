import os
from datetime import timedelta

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.models.common import utcnow
from app.models.notification import Notification
from app.services.errors import (
    ChargeError,
    GatewayError,
    GatewayNotConfigured,
    InvalidState,
    InvalidTransition,
    UnknownTransaction,
)
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.request_store import RequestStore
from app.services.request_workflow import RequestWorkflow

from tests.base import PortalTestBase, make_gateway_config


class PaymentOrchestratorTests(PortalTestBase):
    def _billable(self, db):
        return RequestWorkflow(db).create_request(
            self.client_actor(),
            request_type_id=self.paid_type_id,
            title="Alteração contratual",
            description="Inclusão de sócio",
        )

    def test_request_charge_stores_charge_and_audits(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            charged = self.orchestrator(db).request_charge(req.id, self.client_actor())
            self.assertEqual(charged.txid, "txid0001")
            self.assertEqual(charged.pix_copia_e_cola, "00020126PIXtxid0001")
            self.assertIsNotNone(charged.pix_expiration)
            self.assertEqual(charged.status, "PENDING_PAYMENT")

            descriptor = self.gateway.charges[0]
            self.assertEqual(str(descriptor.amount), "150.00")
            self.assertEqual(descriptor.payer_message, f"Servico {req.protocol}")
            self.assertEqual(descriptor.payer_document, "12.345.678/0001-90")
            self.assertEqual(self.gateway.auth_calls, ["pix.write"])

            actions = [entry.action for entry in RequestStore(db).audit_entries(req.id)]
            self.assertEqual(actions[-1], "Cobrança PIX gerada, aguardando confirmação")

    def test_request_charge_reuses_unexpired_charge(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            first = orchestrator.request_charge(req.id, self.client_actor())
            second = orchestrator.request_charge(req.id, self.client_actor())
            self.assertEqual(first.txid, second.txid)
            self.assertEqual(len(self.gateway.charges), 1)

    def test_request_charge_mints_new_charge_after_expiry(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            orchestrator.request_charge(req.id, self.client_actor())
            stored = RequestStore(db).find(req.id)
            stored.pix_expiration = utcnow() - timedelta(seconds=1)
            db.commit()

            renewed = orchestrator.request_charge(req.id, self.client_actor())
            self.assertEqual(renewed.txid, "txid0002")
            last = RequestStore(db).audit_entries(req.id)[-1]
            self.assertEqual(last.details.get("previous_txid"), "txid0001")

    def test_gateway_failure_leaves_request_untouched(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            history_before = len(RequestStore(db).audit_entries(req.id))
            self.gateway.charge_error = ChargeError(
                "Falha ao gerar cobrança PIX: chave inválida",
                provider_detail={"title": "Chave inválida"},
                http_status=400,
            )
            with self.assertRaises(ChargeError) as raised:
                self.orchestrator(db).request_charge(req.id, self.client_actor())
            self.assertTrue(raised.exception.configuration_problem)
            self.assertEqual(raised.exception.provider_detail, {"title": "Chave inválida"})

            fresh = RequestStore(db).find(req.id)
            self.assertIsNone(fresh.txid)
            self.assertEqual(fresh.status, "PENDING_PAYMENT")
            self.assertEqual(len(RequestStore(db).audit_entries(req.id)), history_before)

    def test_auth_failure_propagates(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            self.gateway.auth_error = self.gateway_auth_failure()
            with self.assertRaises(GatewayError):
                self.orchestrator(db).request_charge(req.id, self.client_actor())
            self.assertEqual(self.gateway.charges, [])

    def test_request_charge_preconditions(self):
        with self.SessionLocal() as db:
            free = RequestWorkflow(db).create_request(
                self.client_actor(), request_type_id=self.free_type_id, title="Dúvida", description="?"
            )
            with self.assertRaises(InvalidTransition):
                self.orchestrator(db).request_charge(free.id, self.client_actor())

            billable = self._billable(db)
            RequestStore(db).soft_delete(billable.id, self.admin_actor())
            with self.assertRaises(InvalidState):
                self.orchestrator(db).request_charge(billable.id, self.client_actor())

    def test_unconfigured_gateway_is_reported(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = PaymentOrchestrator(
                db,
                gateway=self.gateway,
                config=make_gateway_config(self._cert_dir.name, enabled=False),
            )
            with self.assertRaises(GatewayNotConfigured) as raised:
                orchestrator.request_charge(req.id, self.client_actor())
            self.assertTrue(raised.exception.configuration_problem)
            self.assertEqual(self.gateway.auth_calls, [])

    def test_confirm_payment_moves_to_requested_and_notifies(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            orchestrator.request_charge(req.id, self.client_actor())
            db.query(Notification).delete()
            db.commit()

            result = orchestrator.confirm_payment("txid0001")
            self.assertTrue(result.confirmed)
            fresh = RequestStore(db).find(req.id)
            self.assertEqual(fresh.status, "REQUESTED")
            self.assertEqual(fresh.payment_status, "APPROVED")
            self.assertIsNotNone(fresh.paid_at)

            last = RequestStore(db).audit_entries(req.id)[-1]
            self.assertEqual(last.user, "Banco Inter (PIX)")
            self.assertEqual(last.actor_role, "SYSTEM")
            self.assertEqual(last.details.get("source"), "webhook")

            titles = {(str(n.user_id), n.title) for n in db.query(Notification).all()}
            self.assertIn((str(self.admin_id), "Pagamento Confirmado"), titles)
            self.assertIn((str(self.client_id), "Pagamento Confirmado"), titles)

    def test_confirm_payment_is_idempotent(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            orchestrator.request_charge(req.id, self.client_actor())
            orchestrator.confirm_payment("txid0001")
            history = len(RequestStore(db).audit_entries(req.id))

            again = orchestrator.confirm_payment("txid0001")
            self.assertFalse(again.confirmed)
            self.assertEqual(len(RequestStore(db).audit_entries(req.id)), history)

    def test_confirm_unknown_txid(self):
        with self.SessionLocal() as db:
            with self.assertRaises(UnknownTransaction):
                self.orchestrator(db).confirm_payment("nope")

    def test_confirm_on_deleted_request_raises_until_restored(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            orchestrator.request_charge(req.id, self.client_actor())
            RequestStore(db).soft_delete(req.id, self.admin_actor())
            with self.assertRaises(InvalidState):
                orchestrator.confirm_payment("txid0001")
            RequestStore(db).restore(req.id, self.admin_actor())
            self.assertTrue(orchestrator.confirm_payment("txid0001").confirmed)

    def test_duplicate_confirmation_after_delete_is_a_no_op(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            orchestrator.request_charge(req.id, self.client_actor())
            orchestrator.confirm_payment("txid0001")
            RequestStore(db).soft_delete(req.id, self.admin_actor())
            history = len(RequestStore(db).audit_entries(req.id))

            again = orchestrator.confirm_payment("txid0001")
            self.assertFalse(again.confirmed)
            self.assertEqual(len(RequestStore(db).audit_entries(req.id)), history)
            self.assertTrue(RequestStore(db).find(req.id).deleted)

    def test_manual_confirmation_of_reviewed_proof(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            RequestWorkflow(db).submit_payment_proof(req.id, self.client_actor(), "comprovante-001")
            result = self.orchestrator(db).confirm_payment_for_request(req.id, self.admin_actor())
            self.assertTrue(result.confirmed)
            fresh = RequestStore(db).find(req.id)
            self.assertEqual(fresh.status, "REQUESTED")
            self.assertEqual(fresh.payment_status, "APPROVED")
            last = RequestStore(db).audit_entries(req.id)[-1]
            self.assertEqual(last.action, "Pagamento Confirmado pelo Admin")

    def test_manual_confirmation_requires_proof_under_review(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            with self.assertRaises(InvalidTransition):
                self.orchestrator(db).confirm_payment_for_request(req.id, self.admin_actor())
            fresh = RequestStore(db).find(req.id)
            self.assertEqual(fresh.payment_status, "PENDING")

    def test_payment_snapshot_polls_only_while_awaiting(self):
        with self.SessionLocal() as db:
            req = self._billable(db)
            orchestrator = self.orchestrator(db)
            charged = orchestrator.request_charge(req.id, self.client_actor())
            snapshot = orchestrator.payment_snapshot(charged)
            self.assertEqual(snapshot["poll_after_seconds"], 2)
            self.assertTrue(snapshot["charge_live"])
            self.assertEqual(snapshot["price"], "150.00")

            orchestrator.confirm_payment(charged.txid)
            done = orchestrator.payment_snapshot(RequestStore(db).find(req.id))
            self.assertIsNone(done["poll_after_seconds"])
            self.assertEqual(done["payment_status_label"], "Aprovado")
