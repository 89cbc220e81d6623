# app/routers/cron_routes.py

import hmac
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlmodel import Session

from app import config
from app.db import get_session
from app.deps import get_now
from app.schemas import NoShowStats
from app.tasks import mark_no_shows_and_suspend

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
)


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    if not config.CRON_SECRET:
        raise HTTPException(status_code=503, detail="Cron endpoints are not configured")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), config.CRON_SECRET.encode()):
        logger.warning("Rejected cron call with a missing or invalid secret")
        raise HTTPException(status_code=403, detail="Invalid cron secret")


@router.post("/check-no-shows", response_model=NoShowStats, dependencies=[Depends(verify_cron_secret)])
def check_no_shows(
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    logger.info("Running no-show detection at %s", now)
    return mark_no_shows_and_suspend(session, now)
