"""Tests for Celery reconciliation tasks (app/tasks.py)"""
import pytest
from unittest.mock import patch

from app.services.reconciliation import ReconciliationResult


def _result(status, recorded=False):
    return ReconciliationResult(status=status, redirect_to="https://app.test/dashboard", recorded=recorded)


class TestReconcileStaleOrders:

    def test_reconciles_each_pending_order(self, mock_db):
        mock_db.all.return_value = [("order_1",), ("order_2",), ("order_3",), ("order_4",)]
        results = [_result("success", True), _result("failed"), _result("error"), _result("pending")]

        with patch("app.tasks.SessionLocal", return_value=mock_db):
            with patch("app.services.reconciliation.reconcile_order", side_effect=results) as reconcile:
                from app.tasks import reconcile_stale_orders
                result = reconcile_stale_orders.run()

        assert result == {"total": 4, "success": 1, "failed": 1, "pending": 1, "error": 1}
        assert [c[0][1] for c in reconcile.call_args_list] == ["order_1", "order_2", "order_3", "order_4"]
        assert all(c[1]["keep_open"] is True for c in reconcile.call_args_list)
        mock_db.distinct.assert_called_once()
        mock_db.close.assert_called_once()

    def test_age_counts_from_order_attachment(self, mock_db):
        with patch("app.tasks.SessionLocal", return_value=mock_db):
            with patch("app.services.reconciliation.reconcile_order"):
                from app.tasks import reconcile_stale_orders
                reconcile_stale_orders.run()

        criteria = [str(c) for c in mock_db.filter.call_args[0]]
        assert any("order_created_at" in c and "created_at" in c for c in criteria)

    def test_no_stale_orders(self, mock_db):
        with patch("app.tasks.SessionLocal", return_value=mock_db):
            with patch("app.services.reconciliation.reconcile_order") as reconcile:
                from app.tasks import reconcile_stale_orders
                result = reconcile_stale_orders.run(older_than_minutes=5)

        assert result == {"total": 0, "success": 0, "failed": 0, "pending": 0, "error": 0}
        reconcile.assert_not_called()
        mock_db.close.assert_called_once()

    def test_session_closed_when_reconcile_raises(self, mock_db):
        mock_db.all.return_value = [("order_1",)]

        with patch("app.tasks.SessionLocal", return_value=mock_db):
            with patch("app.services.reconciliation.reconcile_order", side_effect=RuntimeError("boom")):
                from app.tasks import reconcile_stale_orders
                with pytest.raises(RuntimeError):
                    reconcile_stale_orders.run()

        mock_db.close.assert_called_once()


class TestReconcileOrderTask:

    def test_returns_summary(self, mock_db):
        with patch("app.tasks.SessionLocal", return_value=mock_db):
            with patch("app.services.reconciliation.reconcile_order",
                       return_value=_result("success", True)) as reconcile:
                from app.tasks import reconcile_order_task
                result = reconcile_order_task.run("order_1")

        reconcile.assert_called_once_with(mock_db, "order_1")
        assert result == {"order_id": "order_1", "status": "success", "recorded": True}
        mock_db.close.assert_called_once()


def test_health_check():
    from app.tasks import health_check
    assert health_check.run()["status"] == "ok"
