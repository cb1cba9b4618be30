"""
Celery tasks

Tasks:
- reconcile_stale_orders: re-run reconciliation for orders stuck in pending
- reconcile_order_task: reconcile a single order on demand
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func

from app.celery_app import celery_app
from app.config import settings
from app.database import SessionLocal
from app.models.enrollment import Enrollment, EnrollmentStatus

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.health_check")
def health_check():
    """Simple health check task for testing Celery setup"""
    return {"status": "ok", "message": "Celery is working"}


@celery_app.task(name="app.tasks.reconcile_order", bind=True, max_retries=1)
def reconcile_order_task(self, order_id: str):
    """Reconcile one order against Cashfree outside the browser redirect"""
    from app.services.reconciliation import reconcile_order

    db = SessionLocal()
    try:
        result = reconcile_order(db, order_id)
        return {"order_id": order_id, "status": result.status, "recorded": result.recorded}
    finally:
        db.close()


@celery_app.task(name="reconcile_stale_orders", bind=True, max_retries=0)
def reconcile_stale_orders(self, older_than_minutes=None):
    """
    Re-reconcile orders whose enrollments are still pending.

    Covers buyers who paid but never came back through the redirect, and
    redirects that ended in ?payment=error. Orders still open at the gateway
    are left pending; any other unpaid order is marked failed, same as on
    redirect. Age counts from when the rows were attached to their order.
    """
    from app.services.reconciliation import reconcile_order, STATUS_ERROR

    minutes = older_than_minutes or settings.stale_order_minutes
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)

    db = SessionLocal()
    try:
        order_ids = [
            row[0] for row in db.query(Enrollment.order_id).filter(
                Enrollment.status == EnrollmentStatus.PENDING,
                Enrollment.order_id.isnot(None),
                func.coalesce(Enrollment.order_created_at, Enrollment.created_at) < cutoff,
            ).distinct().all()
        ]

        counts = {"success": 0, "failed": 0, "pending": 0, "error": 0}
        for order_id in order_ids:
            result = reconcile_order(db, order_id, keep_open=True)
            counts[result.status] = counts.get(result.status, 0) + 1
            if result.status == STATUS_ERROR:
                logger.warning("Stale order %s could not be reconciled", order_id)

        logger.info("Stale order sweep: %s order(s), %s", len(order_ids), counts)
        return {"total": len(order_ids), **counts}
    finally:
        db.close()
