from celery import Celery

from microinvest.core.config import settings
from microinvest.core.logging import setup_logging

setup_logging()

app = Celery(
    "microinvest",
    include=[
        "microinvest.tasks.order_expiry",
        "microinvest.tasks.limit_orders",
        "microinvest.tasks.settlement",
        "microinvest.tasks.session_cleanup",
        "microinvest.tasks.position_revaluation",
    ],
)
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = False

app.conf.beat_schedule = {
    "expire-orders": {
        "task": "microinvest.tasks.order_expiry.expire_orders",
        "schedule": float(settings.ORDER_EXPIRY_INTERVAL_SEC),
    },
    "process-limit-orders": {
        "task": "microinvest.tasks.limit_orders.process_limit_orders",
        "schedule": float(settings.LIMIT_ORDER_INTERVAL_SEC),
    },
    "settle-transactions": {
        "task": "microinvest.tasks.settlement.settle_transactions",
        "schedule": float(settings.SETTLEMENT_INTERVAL_SEC),
    },
    "cleanup-sessions": {
        "task": "microinvest.tasks.session_cleanup.cleanup_sessions",
        "schedule": float(settings.SESSION_CLEANUP_INTERVAL_SEC),
    },
    "revalue-positions": {
        "task": "microinvest.tasks.position_revaluation.revalue_positions",
        "schedule": float(settings.POSITION_REVALUATION_INTERVAL_SEC),
    },
}
