import os
from decimal import Decimal
from unittest.mock import patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.core.config import settings
from app.models.company import Company
from app.models.portal_user import PortalUser
from app.models.request_type import RequestType
from app.services.bootstrap import DEFAULT_REQUEST_TYPES, run_bootstrap

from tests.base import PortalTestBase


class BootstrapTests(PortalTestBase):
    def test_bootstrap_is_idempotent(self):
        with self.SessionLocal() as db:
            first = run_bootstrap(db)
            second = run_bootstrap(db)
            self.assertTrue(first["enabled"])
            self.assertEqual(first["admin_id"], second["admin_id"])
            self.assertEqual(first["client_id"], second["client_id"])
            self.assertEqual(second["request_types_created"], 0)

            client = db.query(PortalUser).filter(PortalUser.email == "cliente@demo.com").one()
            company = db.get(Company, client.company_id)
            self.assertIsNotNone(company)
            self.assertEqual(company.name, settings.BOOTSTRAP_COMPANY_NAME)
            self.assertEqual(client.role, "CLIENT")

    def test_default_request_types_keep_existing_prices(self):
        with self.SessionLocal() as db:
            run_bootstrap(db)
            names = {row.name for row in db.query(RequestType).all()}
            for item in DEFAULT_REQUEST_TYPES:
                self.assertIn(item["name"], names)
            certidao = db.query(RequestType).filter(RequestType.name == "Certidão Negativa Extra").one()
            self.assertEqual(certidao.price, Decimal("50.00"))

            # Seeded fixture already owns "Alteração Contratual" at 150.00; an operator edit survives.
            edited = db.query(RequestType).filter(RequestType.name == "Alteração Contratual").one()
            edited.price = Decimal("180.00")
            db.commit()
            run_bootstrap(db)
            self.assertEqual(
                db.query(RequestType).filter(RequestType.name == "Alteração Contratual").one().price,
                Decimal("180.00"),
            )

    def test_disabled_bootstrap_does_nothing(self):
        with self.SessionLocal() as db, patch.object(settings, "BOOTSTRAP_ENABLED", False):
            before = db.query(PortalUser).count()
            self.assertEqual(run_bootstrap(db), {"enabled": False})
            self.assertEqual(db.query(PortalUser).count(), before)
