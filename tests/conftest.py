import sys
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from caelex.config import Base  # noqa: E402
import caelex.config as app_config  # noqa: E402
import caelex.main as app_main  # noqa: E402
from caelex.api.dependencies import get_db  # noqa: E402
from caelex.auth.jwt import get_current_user  # noqa: E402
from caelex.core.request_context import RequestContext  # noqa: E402
# Import the full models module so every table registers with Base metadata.
from caelex.models import models as _all_models  # noqa: E402,F401
from caelex.models.models import (  # noqa: E402
    Deadline,
    NCASubmission,
    Notification,
    Organization,
    OrganizationMember,
    SupervisionConfig,
    SupervisionReport,
    User,
)
from caelex.services.permissions import get_default_permissions_for_role, parse_role  # noqa: E402
from caelex.utils.dates import utcnow  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Point the app-wide SessionLocal/engine at a throwaway DB so TestClient startup has tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def client_for(db_session: Session):
    """Return a factory that builds a TestClient authenticated as the given user."""
    from fastapi.testclient import TestClient

    clients = []

    def _override_get_db():
        yield db_session

    def _build(user: Optional[User] = None) -> TestClient:
        app_main.app.dependency_overrides[get_db] = _override_get_db
        if user is not None:
            app_main.app.dependency_overrides[get_current_user] = lambda: user
        else:
            app_main.app.dependency_overrides.pop(get_current_user, None)
        client = TestClient(app_main.app)
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()
    app_main.app.dependency_overrides.clear()


def context_for(user: User) -> RequestContext:
    return RequestContext(user_id=user.id, role=user.role)


@pytest.fixture
def ctx_for() -> Callable[[User], RequestContext]:
    return context_for


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    counter = {"value": 0}

    def _create(email: Optional[str] = None, role: str = "user", name: Optional[str] = None) -> User:
        counter["value"] += 1
        user = User(
            email=email or f"user{counter['value']}@example.com",
            name=name or f"User {counter['value']}",
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_deadline(db_session: Session) -> Callable[..., Deadline]:
    def _create(
        user: User,
        due_date: Optional[datetime] = None,
        status: str = "UPCOMING",
        title: str = "Submit annual report",
    ) -> Deadline:
        deadline = Deadline(
            user_id=user.id,
            title=title,
            due_date=due_date or utcnow() + timedelta(days=30),
            status=status,
        )
        db_session.add(deadline)
        db_session.commit()
        return deadline

    return _create


@pytest.fixture
def create_organization(db_session: Session) -> Callable[..., Organization]:
    counter = {"value": 0}

    def _create(owner: Optional[User] = None, plan: str = "PROFESSIONAL", max_users: int = 50) -> Organization:
        counter["value"] += 1
        organization = Organization(
            name=f"Orbital Ops {counter['value']}",
            slug=f"orbital-ops-{counter['value']}",
            plan=plan,
            max_users=max_users,
        )
        db_session.add(organization)
        db_session.flush()
        if owner is not None:
            db_session.add(
                OrganizationMember(
                    organization_id=organization.id,
                    user_id=owner.id,
                    role="OWNER",
                    permissions=sorted(get_default_permissions_for_role("OWNER")),
                )
            )
        db_session.commit()
        return organization

    return _create


@pytest.fixture
def add_member(db_session: Session) -> Callable[..., OrganizationMember]:
    def _add(
        organization: Organization,
        user: User,
        role: str = "MEMBER",
        permissions: Optional[list] = None,
    ) -> OrganizationMember:
        member = OrganizationMember(
            organization_id=organization.id,
            user_id=user.id,
            role=role,
            permissions=permissions
            if permissions is not None
            else sorted(get_default_permissions_for_role(parse_role(role))),
        )
        db_session.add(member)
        db_session.commit()
        return member

    return _add


@pytest.fixture
def create_report(db_session: Session) -> Callable[..., SupervisionReport]:
    def _create(user: User, status: str = "generated", report_type: str = "annual_compliance") -> SupervisionReport:
        config = db_session.query(SupervisionConfig).filter(SupervisionConfig.user_id == user.id).first()
        if not config:
            config = SupervisionConfig(user_id=user.id, primary_nca="DE_BMWK")
            db_session.add(config)
            db_session.flush()
        report = SupervisionReport(
            supervision_id=config.id,
            report_type=report_type,
            title=f"{report_type} report",
            status=status,
        )
        db_session.add(report)
        db_session.commit()
        return report

    return _create


@pytest.fixture
def create_submission(db_session: Session, create_report) -> Callable[..., NCASubmission]:
    def _create(
        user: User,
        status: str = "SUBMITTED",
        nca_authority: str = "DE_BMWK",
        attachments: Optional[str] = None,
        status_history: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
        **fields,
    ) -> NCASubmission:
        report = create_report(user, status="submitted")
        submission = NCASubmission(
            user_id=user.id,
            report_id=report.id,
            nca_authority=nca_authority,
            nca_authority_name="Federal Ministry for Economic Affairs",
            submission_method="EMAIL",
            status=status,
            submitted_at=submitted_at or utcnow(),
            attachments=attachments,
            status_history=status_history,
            **fields,
        )
        db_session.add(submission)
        db_session.commit()
        return submission

    return _create


@pytest.fixture
def create_notification(db_session: Session) -> Callable[..., Notification]:
    def _create(user: User, read: bool = False, notification_type: str = "DEADLINE_REMINDER") -> Notification:
        notification = Notification(
            user_id=user.id,
            type=notification_type,
            title="Deadline reminder",
            message="Your deadline is coming up.",
            severity="INFO",
            read=read,
        )
        db_session.add(notification)
        db_session.commit()
        return notification

    return _create
