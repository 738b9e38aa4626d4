from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
)

from app.db.base import Base


class LiveSession(Base):
    """
    A scheduled live session. Recurring sessions are stored once, as a
    template; their individual occurrences are computed on read.
    """

    __tablename__ = "live_sessions"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Stored in UTC
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    meet_link = Column(String(500), nullable=True)

    is_recurring = Column(
        Boolean,
        nullable=False,
        default=False,
    )
    recurrence_rule = Column(String(255), nullable=True)

    # List of "YYYY-MM-DD" strings
    excluded_dates = Column(
        JSON,
        nullable=False,
        default=list,
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<LiveSession id={self.id} name={self.name!r} "
            f"start={self.start_time} recurring={self.is_recurring}>"
        )
