from celery import Celery
from app.core.config import settings

celery_app = Celery("maat_client_portal", broker=settings.REDIS_URL, backend=settings.REDIS_URL, include=["app.workers.tasks.payments"])

celery_app.conf.beat_schedule = {
    "reconcile_pending_charges": {
        "task": "app.workers.tasks.payments.reconcile_pending_charges",
        "schedule": float(settings.PIX_RECONCILE_INTERVAL_SECONDS),
    },
}
celery_app.conf.timezone = "America/Sao_Paulo"
