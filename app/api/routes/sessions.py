import logging
from datetime import date as date_type, datetime
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.admin_auth import verify_admin_api_key
from app.core.config import get_settings
from app.db.session import get_db
from app.models.live_session import LiveSession
from app.schemas.live_session import (
    ExclusionCreate,
    LiveSessionCreate,
    LiveSessionRead,
    LiveSessionUpdate,
    SessionCalendar,
)
from app.services.recurrence import to_calendar_time
from app.services.recurrence_rule import (
    InvalidRuleError,
    RecurrenceError,
    build_recurrence_rule,
    day_code,
)
from app.services.session_calendar import list_session_occurrences, to_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])

SESSION_EXAMPLE = {
    "id": 7,
    "name": "Live Q&A",
    "description": "Weekly Q&A session",
    "start_time": "2026-02-02T18:00:00Z",
    "end_time": "2026-02-02T19:00:00Z",
    "meet_link": "https://meet.google.com/abc-defg-hij",
    "is_recurring": True,
    "recurrence_rule": "FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20260630",
    "excluded_dates": ["2026-02-11"],
    "is_occurrence": False,
    "created_at": "2026-01-20T09:12:44Z",
    "updated_at": None,
}


async def _get_session_or_404(db: AsyncSession, session_id: int) -> LiveSession:
    result = await db.execute(select(LiveSession).where(LiveSession.id == session_id))
    session = result.scalar_one_or_none()

    if session is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"Session with id {session_id} not found.",
        )
    return session


@router.post(
    "",
    response_model=LiveSessionRead,
    status_code=HTTPStatus.CREATED,
    dependencies=[Depends(verify_admin_api_key)],
    summary="Schedule a new live session",
    description=(
        "Create a one-off or recurring live session.\n\n"
        "Recurring sessions are stored once; their occurrences are computed when "
        "the calendar is read. Supply either a raw `recurrence_rule` "
        "(`FREQ=DAILY` or `FREQ=WEEKLY` with optional `BYDAY` and `UNTIL`) or a "
        "`recurrence_pattern` preset.\n\n"
        "Datetimes without a UTC offset are read in the configured calendar timezone."
    ),
    responses={
        201: {
            "description": "Session successfully created.",
            "content": {"application/json": {"example": SESSION_EXAMPLE}},
        },
        422: {
            "description": "Validation error (malformed rule, bad excluded date, end before start).",
        },
    },
)
async def create_session(
    payload: LiveSessionCreate,
    db: AsyncSession = Depends(get_db),
) -> LiveSessionRead:
    """
    Create a new session template.
    """
    tz = get_settings().calendar_tz

    is_recurring = payload.is_recurring
    recurrence_rule = payload.recurrence_rule

    if recurrence_rule is None and payload.recurrence_pattern is not None:
        pattern = payload.recurrence_pattern
        anchor_day = day_code(to_calendar_time(payload.start_time, tz).date())
        try:
            recurrence_rule = build_recurrence_rule(
                pattern.preset,
                anchor_day=anchor_day,
                days=pattern.days,
                until=pattern.until,
            )
        except InvalidRuleError as exc:
            raise HTTPException(
                status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
                detail=str(exc),
            ) from exc
        is_recurring = True

    session = LiveSession(
        name=payload.name,
        description=payload.description,
        start_time=to_utc(payload.start_time, tz),
        end_time=to_utc(payload.end_time, tz) if payload.end_time else None,
        meet_link=payload.meet_link,
        is_recurring=is_recurring,
        recurrence_rule=recurrence_rule,
        excluded_dates=payload.excluded_dates,
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)

    logger.info(
        "Created session id=%s recurring=%s rule=%s", session.id, is_recurring, recurrence_rule
    )
    return LiveSessionRead.from_row(session)


@router.get(
    "",
    response_model=list[LiveSessionRead],
    summary="List stored sessions",
    description=(
        "Return stored session templates ordered by start time.\n\n"
        "This lists what is stored (one row per recurring series). Use "
        "`/sessions/calendar` to see individual occurrences."
    ),
)
async def list_sessions(
    from_time: datetime | None = Query(
        default=None,
        description="Only sessions whose stored start is at or after this instant.",
        examples=["2026-03-01T00:00:00Z"],
    ),
    to_time: datetime | None = Query(
        default=None,
        description="Only sessions whose stored start is at or before this instant.",
        examples=["2026-03-31T23:59:59Z"],
    ),
    db: AsyncSession = Depends(get_db),
) -> list[LiveSessionRead]:
    """
    Fetch all session templates, optionally filtered by start time.
    """
    tz = get_settings().calendar_tz

    stmt = select(LiveSession)
    if from_time is not None:
        stmt = stmt.where(LiveSession.start_time >= to_utc(from_time, tz))
    if to_time is not None:
        stmt = stmt.where(LiveSession.start_time <= to_utc(to_time, tz))

    result = await db.execute(stmt.order_by(LiveSession.start_time.asc(), LiveSession.id.asc()))
    return [LiveSessionRead.from_row(s) for s in result.scalars().all()]


@router.get(
    "/calendar",
    response_model=SessionCalendar,
    summary="Sessions for a calendar window",
    description=(
        "Expand every session into the occurrences that fall within "
        "`[from_time, to_time]` (both inclusive).\n\n"
        "- Recurring sessions produce one entry per occurrence "
        "(`is_occurrence = true`), clipped to the rule's `UNTIL` and skipping "
        "`excluded_dates`.\n"
        "- One-off sessions starting in the window are returned as stored.\n"
        "- Day boundaries and weekdays follow the configured calendar timezone."
    ),
    responses={
        400: {
            "description": (
                "Reversed or over-long window, an uninterpretable stored rule, "
                "or a session producing too many occurrences."
            ),
        },
    },
)
async def get_session_calendar(
    from_time: datetime = Query(
        ...,
        description="Start (inclusive) of the calendar window.",
        examples=["2026-02-01T00:00:00Z"],
    ),
    to_time: datetime = Query(
        ...,
        description="End (inclusive) of the calendar window.",
        examples=["2026-02-28T23:59:59Z"],
    ),
    db: AsyncSession = Depends(get_db),
) -> SessionCalendar:
    """
    Calendar view over a bounded window.
    """
    settings = get_settings()
    tz = settings.calendar_tz

    try:
        occurrences = await list_session_occurrences(
            db,
            range_start=from_time,
            range_end=to_time,
            calendar_tz=tz,
            max_occurrences=settings.RECURRENCE_MAX_OCCURRENCES,
            max_range_days=settings.CALENDAR_MAX_RANGE_DAYS,
        )
    except RecurrenceError as exc:
        # Uninterpretable stored rule or occurrence cap
        logger.warning("Calendar expansion failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        # Reversed or over-long window
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return SessionCalendar(
        range_start=to_calendar_time(from_time, tz),
        range_end=to_calendar_time(to_time, tz),
        timezone=settings.CALENDAR_TIMEZONE,
        occurrences=occurrences,
    )


@router.get(
    "/{session_id}",
    response_model=LiveSessionRead,
    summary="Get session details by ID",
    responses={
        404: {"description": "No session exists with the given ID."},
    },
)
async def get_session(
    session_id: int = Path(..., description="Numeric ID of the session.", ge=1),
    db: AsyncSession = Depends(get_db),
) -> LiveSessionRead:
    """
    Fetch a single session template by its ID.
    """
    session = await _get_session_or_404(db, session_id)
    return LiveSessionRead.from_row(session)


@router.patch(
    "/{session_id}",
    response_model=LiveSessionRead,
    dependencies=[Depends(verify_admin_api_key)],
    summary="Partially update a session",
    description=(
        "Update any session field. Only fields present in the request body are "
        "modified. Changing the rule or start time of a recurring session moves "
        "the whole series."
    ),
    responses={
        400: {"description": "The update would leave end_time before start_time."},
        404: {"description": "No session exists with the given ID."},
    },
)
async def update_session(
    session_id: int = Path(..., description="Numeric ID of the session.", ge=1),
    payload: LiveSessionUpdate | None = None,
    db: AsyncSession = Depends(get_db),
) -> LiveSessionRead:
    """
    Apply partial updates to a session.
    """
    session = await _get_session_or_404(db, session_id)

    if payload is None:
        return LiveSessionRead.from_row(session)

    tz = get_settings().calendar_tz
    current = LiveSessionRead.from_row(session)
    update_data = payload.model_dump(exclude_unset=True)

    # Explicit nulls on non-nullable columns mean "leave as is"
    for field in ("name", "start_time", "is_recurring"):
        if field in update_data and update_data[field] is None:
            del update_data[field]
    if "excluded_dates" in update_data and update_data["excluded_dates"] is None:
        update_data["excluded_dates"] = []

    for field in ("start_time", "end_time"):
        if update_data.get(field) is not None:
            update_data[field] = to_utc(update_data[field], tz)

    new_start = update_data.get("start_time", current.start_time)
    new_end = update_data.get("end_time", current.end_time)
    if new_end is not None and new_end <= new_start:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="end_time must be after start_time",
        )

    for field, value in update_data.items():
        setattr(session, field, value)

    await db.commit()
    await db.refresh(session)

    logger.info("Updated session id=%s fields=%s", session.id, sorted(update_data))
    return LiveSessionRead.from_row(session)


@router.delete(
    "/{session_id}",
    status_code=HTTPStatus.NO_CONTENT,
    dependencies=[Depends(verify_admin_api_key)],
    summary="Delete a session (whole series)",
    description=(
        "Delete a session. For recurring sessions this removes every occurrence; "
        "to cancel a single occurrence use `POST /sessions/{id}/exclusions`."
    ),
    responses={
        404: {"description": "No session exists with the given ID."},
    },
)
async def delete_session(
    session_id: int = Path(..., description="Numeric ID of the session.", ge=1),
    db: AsyncSession = Depends(get_db),
) -> Response:
    session = await _get_session_or_404(db, session_id)
    await db.delete(session)
    await db.commit()

    logger.info("Deleted session id=%s", session_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.post(
    "/{session_id}/exclusions",
    response_model=LiveSessionRead,
    dependencies=[Depends(verify_admin_api_key)],
    summary="Cancel a single occurrence",
    description=(
        "Add a calendar date to the session's `excluded_dates` so the occurrence "
        "on that date is no longer produced. Adding a date twice is a no-op."
    ),
    responses={
        400: {"description": "The session is not recurring."},
        404: {"description": "No session exists with the given ID."},
    },
)
async def add_exclusion(
    payload: ExclusionCreate,
    session_id: int = Path(..., description="Numeric ID of the session.", ge=1),
    db: AsyncSession = Depends(get_db),
) -> LiveSessionRead:
    session = await _get_session_or_404(db, session_id)

    if not session.is_recurring:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Only recurring sessions have occurrences to cancel; delete the session instead.",
        )

    date_key = payload.occurrence_date.isoformat()
    excluded = list(session.excluded_dates or [])
    if date_key not in excluded:
        # Assign a new list so the JSON column is flagged as changed
        session.excluded_dates = sorted([*excluded, date_key])
        await db.commit()
        await db.refresh(session)
        logger.info("Session id=%s: cancelled occurrence on %s", session_id, date_key)

    return LiveSessionRead.from_row(session)


@router.delete(
    "/{session_id}/exclusions/{occurrence_date}",
    response_model=LiveSessionRead,
    dependencies=[Depends(verify_admin_api_key)],
    summary="Restore a cancelled occurrence",
    responses={
        404: {"description": "Session not found, or the date is not excluded."},
    },
)
async def remove_exclusion(
    session_id: int = Path(..., description="Numeric ID of the session.", ge=1),
    occurrence_date: date_type = Path(
        ...,
        description="Calendar date (YYYY-MM-DD) to restore.",
        examples=["2026-02-11"],
    ),
    db: AsyncSession = Depends(get_db),
) -> LiveSessionRead:
    session = await _get_session_or_404(db, session_id)

    date_key = occurrence_date.isoformat()
    excluded = list(session.excluded_dates or [])
    if date_key not in excluded:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"{date_key} is not an excluded date of session {session_id}.",
        )

    session.excluded_dates = [d for d in excluded if d != date_key]
    await db.commit()
    await db.refresh(session)

    logger.info("Session id=%s: restored occurrence on %s", session_id, date_key)
    return LiveSessionRead.from_row(session)
