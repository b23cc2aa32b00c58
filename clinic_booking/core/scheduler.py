import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clinic_booking.config import settings
from clinic_booking.crud.appointments import mark_no_shows, utcnow
from clinic_booking.database import SessionLocal

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def sweep_no_shows() -> int:
    db = SessionLocal()
    try:
        return mark_no_shows(db, now=utcnow(), grace_minutes=settings.NO_SHOW_GRACE_MINUTES)
    finally:
        db.close()


def start_scheduler():
    # Flag patients who never arrived so their slots stop counting as booked
    scheduler.add_job(
        sweep_no_shows,
        trigger=IntervalTrigger(minutes=settings.NO_SHOW_SWEEP_MINUTES),
        id="sweep_no_shows",
        replace_existing=True
    )
    if not scheduler.running:
        scheduler.start()
        logger.info("No-show sweep scheduled every %s minutes", settings.NO_SHOW_SWEEP_MINUTES)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
