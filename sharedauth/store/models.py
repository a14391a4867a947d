"""Identity store database models."""

from datetime import datetime

from pytz import UTC
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the database."""
    return datetime.now(tz=UTC).replace(tzinfo=None)


class DBUser(Base):  # type: ignore
    """
    Shared user table.

    +---------------------+--------------+------+-----+---------+
    | Field               | Type         | Null | Key | Default |
    +---------------------+--------------+------+-----+---------+
    | user_id             | char(32)     | NO   | PRI | NULL    |
    | name                | varchar(50)  | NO   |     | NULL    |
    | email               | varchar(255) | NO   | UNI | NULL    |
    | password_enc        | varchar(255) | NO   |     | NULL    |
    | flag_email_verified | int          | NO   |     | 0       |
    | last_login_at       | datetime     | YES  | MUL | NULL    |
    | created_at          | datetime     | NO   | MUL | NULL    |
    | updated_at          | datetime     | NO   |     | NULL    |
    +---------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'sso_users'

    user_id = Column(String(32), primary_key=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_enc = Column(String(255), nullable=False)
    flag_email_verified = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime, index=True)
    created_at = Column(DateTime, nullable=False, index=True, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow,
                        onupdate=utcnow)

    services = relationship('DBUserService', cascade='all, delete-orphan',
                            lazy='selectin')


class DBUserService(Base):  # type: ignore
    """
    Services on which a user has signed in.

    The composite primary key makes this a set: a service appears at most
    once per user no matter how many times it is recorded.
    """

    __tablename__ = 'sso_user_services'

    user_id = Column(ForeignKey('sso_users.user_id', ondelete='CASCADE'),
                     primary_key=True)
    service_name = Column(String(64), primary_key=True)
    first_used_at = Column(DateTime, nullable=False, default=utcnow)
