"""Daily overdue sweep.

Runs as a Celery beat task.  Every PENDING invoice whose due date has passed
and that has no approved payment becomes OVERDUE; PAID and CANCELLED
invoices are never touched, so running the sweep twice changes nothing.
"""
import logging
from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import utcnow
from app.services.ledger import overdue_sweep_statement
from app.worker import celery_app

logger = logging.getLogger(__name__)

_engine = create_engine(settings.database_url_sync, pool_pre_ping=True)


def sweep_overdue(db: Session, today: date) -> int:
    """Apply the sweep on a sync session and commit; returns the number of invoices marked."""
    result = db.execute(overdue_sweep_statement(today))
    db.commit()
    return result.rowcount


# ─── Celery task ────────────────────────────────────────────────────────────────

@celery_app.task(name="app.services.overdue.mark_overdue_invoices")
def mark_overdue_invoices():
    """Mark unpaid invoices past their due date as OVERDUE."""
    today = utcnow().date()
    logger.info("Running overdue sweep for %s", today)

    with Session(_engine) as db:
        marked = sweep_overdue(db, today)

    logger.info("Overdue sweep done: %d invoice(s) marked overdue", marked)
    return marked
