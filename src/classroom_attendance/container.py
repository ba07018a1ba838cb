from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .attendance.mysql_session_repository import MySQLSessionRepository
from .attendance.repository import SessionRepository
from .attendance.service import AttendanceSessionService
from .classes.enrollment import EnrollmentLedger
from .classes.mysql_class_repository import MySQLClassRepository
from .classes.repository import ClassRepository
from .classes.service import ClassService
from .common.datetime_utils import utc_now
from .core.constants import DEFAULT_CONNECT_RETRIES, DEFAULT_POOL_SIZE, DEFAULT_RETRY_DELAY_SECONDS
from .database.connection import ConnectionPool, DBConfig, RetryPolicy
from .history.mysql_history_repository import MySQLHistoryRepository
from .history.repository import HistoryRepository
from .stats.aggregator import StatsAggregator
from .students.service import StudentService
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Container:
    pool: Optional[ConnectionPool]

    users_repo: UserRepository
    classes_repo: ClassRepository
    sessions_repo: SessionRepository
    history_repo: HistoryRepository

    auth_service: AuthService
    user_service: UserService
    stats_aggregator: StatsAggregator
    enrollment_ledger: EnrollmentLedger
    class_service: ClassService
    session_service: AttendanceSessionService
    student_service: StudentService


def assemble(
    *,
    users_repo: UserRepository,
    classes_repo: ClassRepository,
    sessions_repo: SessionRepository,
    history_repo: HistoryRepository,
    pool: Optional[ConnectionPool] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Container:
    """Wire services over the given repositories."""

    stats_aggregator = StatsAggregator(history_repo, classes_repo, users_repo, clock=clock)
    return Container(
        pool=pool,
        users_repo=users_repo,
        classes_repo=classes_repo,
        sessions_repo=sessions_repo,
        history_repo=history_repo,
        auth_service=AuthService(users_repo),
        user_service=UserService(users_repo, classes_repo),
        stats_aggregator=stats_aggregator,
        enrollment_ledger=EnrollmentLedger(
            classes_repo,
            users_repo,
            sessions_repo,
            history_repo,
            stats_aggregator,
            clock=clock,
        ),
        class_service=ClassService(classes_repo, sessions_repo, history_repo, stats_aggregator),
        session_service=AttendanceSessionService(
            sessions_repo,
            classes_repo,
            history_repo,
            stats_aggregator,
            clock=clock,
        ),
        student_service=StudentService(classes_repo, history_repo, users_repo, stats_aggregator),
    )


def db_config_from_dict(db_config: dict) -> DBConfig:
    return DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
        pool_size=int(db_config.get("pool_size", DEFAULT_POOL_SIZE)),
    )


def build_container(*, db_config: dict) -> Container:
    config = db_config_from_dict(db_config)
    pool = ConnectionPool(
        config,
        retry=RetryPolicy(
            max_retries=int(db_config.get("connect_retries", DEFAULT_CONNECT_RETRIES)),
            delay_seconds=float(db_config.get("retry_delay_seconds", DEFAULT_RETRY_DELAY_SECONDS)),
        ),
    )

    return assemble(
        users_repo=MySQLUserRepository(pool),
        classes_repo=MySQLClassRepository(pool),
        sessions_repo=MySQLSessionRepository(pool),
        history_repo=MySQLHistoryRepository(pool),
        pool=pool,
    )
