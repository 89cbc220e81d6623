# app/tasks.py
"""Periodic jobs.

- cleanup_expired_drafts: cancels drafts whose anchor window has passed
- mark_no_shows_and_suspend: marks overdue appointments as no-show and
  suspends patients who reach the no-show threshold

Both are called from cron through the HTTP endpoints in ``app.routers``.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import config
from .booking import apply_no_show, expire_draft
from .core import no_show_cutoff
from .data import NO_SHOW_CANDIDATE_STATUSES
from .models import Appointment
from .schemas import NoShowStats

logger = logging.getLogger(__name__)


def cleanup_expired_drafts(session: Session, now: datetime, patient_id: Optional[int] = None) -> int:
    """Cancel drafts with ``draft_expires_at < now``.

    Limited to one patient's drafts when ``patient_id`` is given.
    Returns the number of drafts cancelled.
    """
    stmt = (
        select(Appointment)
        .where(Appointment.status == "draft")
        .where(Appointment.draft_expires_at != None)  # noqa: E711
        .where(Appointment.draft_expires_at < now)
    )
    if patient_id is not None:
        stmt = stmt.where(Appointment.patient_id == patient_id)

    cancelled_count = 0
    for draft in session.exec(stmt).all():
        if expire_draft(session, draft):
            cancelled_count += 1
            logger.info("Expired draft %s cancelled (expired at %s)", draft.id, draft.draft_expires_at)

    session.commit()

    if cancelled_count > 0:
        logger.info("cleanup_expired_drafts: %s expired drafts cancelled", cancelled_count)
    return cancelled_count


def mark_no_shows_and_suspend(session: Session, now: datetime) -> NoShowStats:
    """Mark overdue scheduled/checked-in appointments as no-show.

    An appointment is overdue once its date is before ``now`` minus the
    grace period. Each no-show counts against the patient; reaching the
    threshold suspends the account. A failure on one appointment is logged
    and the job moves on to the next one.
    """
    stats = NoShowStats()
    cutoff = no_show_cutoff(now, config.NO_SHOW_GRACE_HOURS)

    overdue = session.exec(
        select(Appointment)
        .where(Appointment.status.in_(NO_SHOW_CANDIDATE_STATUSES))
        .where(Appointment.appointment_date < cutoff)
    ).all()
    stats.total_appointments_checked = len(overdue)

    if not overdue:
        logger.info("mark_no_shows_and_suspend: no overdue appointments before %s", cutoff)
        return stats

    for appointment in overdue:
        appointment_id = appointment.id
        try:
            patient, suspended = apply_no_show(
                session,
                appointment,
                now,
                None,
                "Automatic no-show detection: patient did not arrive within "
                f"{config.NO_SHOW_GRACE_HOURS} hours after the scheduled date",
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Error processing overdue appointment %s", appointment_id)
            continue

        stats.total_marked_no_show += 1
        stats.appointments_marked.append(appointment_id)
        logger.info(
            "Marked appointment %s as no-show (patient %s no-show count: %s)",
            appointment_id, patient.id, patient.no_show_count,
        )

        if suspended and patient.id not in stats.patients_suspended:
            stats.total_patients_suspended += 1
            stats.patients_suspended.append(patient.id)
            logger.info("Suspended patient %s until %s", patient.id, patient.suspended_until)

    logger.info(
        "mark_no_shows_and_suspend: checked=%s marked=%s suspended=%s",
        stats.total_appointments_checked,
        stats.total_marked_no_show,
        stats.total_patients_suspended,
    )
    return stats
