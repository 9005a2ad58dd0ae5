"""
Pytest fixtures for gym backend tests.

Provides test database setup, users with tokens, plan/enquiry fixtures and
the test client. Notifications run inline (NOTIFICATIONS_SYNC) and email is
in test mode, so nothing leaves the process.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import MembershipPlan, Enquiry
from app.permissions import ROLE_ADMIN, ROLE_STAFF, ROLE_MEMBER
from app.services import auth_service, session_service, membership_service
from app.services.notification_service import dispatcher
from app.time_utils import utcnow


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATIONS_SYNC': True,
        'EMAIL_TEST_MODE': True,
        'WHATSAPP_ENABLED': False,
        'NOTIFICATION_RETRY_WAIT_SECONDS': 0,
        'GYM_NAME': 'Test Gym',
    })

    with app.app_context():
        db.create_all()
        yield app
        dispatcher.shutdown(wait=False)
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        dispatcher.reset_stats()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username, role, first_name, last_name):
    return auth_service.create_user(
        username=username,
        email=f"{username}@gym.com",
        password=TEST_PASSWORD,
        role=role,
        first_name=first_name,
        last_name=last_name,
        created_by="pytest",
    )


def _token_for(user) -> str:
    _, token = session_service.create_session(user_id=user.id, user_agent="pytest")
    return token


@pytest.fixture(scope='function')
def admin_user(db_session):
    """ADMIN role user."""
    return _make_user("admin", ROLE_ADMIN, "Ada", "Admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    """STAFF role user (front desk)."""
    return _make_user("frontdesk", ROLE_STAFF, "Sam", "Staff")


@pytest.fixture(scope='function')
def member_user(db_session):
    """MEMBER role user, no back-office permissions."""
    return _make_user("member", ROLE_MEMBER, "Max", "Member")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(_token_for(admin_user))


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(_token_for(staff_user))


@pytest.fixture(scope='function')
def member_headers(member_user):
    return auth_headers(_token_for(member_user))


def make_plan(db_session, name="Annual", months=12, price_cents=120000, plan_type="Yearly", is_active=True):
    plan = MembershipPlan(
        plan_name=name,
        plan_type=plan_type,
        duration_in_months=months,
        price_cents=price_cents,
        is_active=is_active,
        created_by="pytest",
        created_at=utcnow(),
    )
    db_session.add(plan)
    db_session.commit()
    return plan


def make_enquiry(db_session, first="Jane", last="Doe", email="jane@example.com", phone="5550001111", **extra):
    enquiry = Enquiry(
        first_name=first,
        last_name=last,
        email=email,
        phone=phone,
        is_converted=False,
        created_by="pytest",
        created_at=utcnow(),
        **extra,
    )
    db_session.add(enquiry)
    db_session.commit()
    return enquiry


@pytest.fixture(scope='function')
def plan_factory(db_session):
    def _factory(**kwargs):
        return make_plan(db_session, **kwargs)
    return _factory


@pytest.fixture(scope='function')
def enquiry_factory(db_session):
    def _factory(**kwargs):
        return make_enquiry(db_session, **kwargs)
    return _factory


@pytest.fixture(scope='function')
def annual_plan(db_session):
    """$1200.00 for 12 months."""
    return make_plan(db_session)


@pytest.fixture(scope='function')
def monthly_plan(db_session):
    """$50.00 for 1 month."""
    return make_plan(db_session, name="Monthly", months=1, price_cents=5000, plan_type="Monthly")


@pytest.fixture(scope='function')
def enquiry(db_session):
    return make_enquiry(db_session)


@pytest.fixture(scope='function')
def membership(db_session, enquiry, annual_plan):
    """Converted enquiry on the annual plan with nothing paid yet."""
    return membership_service.convert_enquiry(
        enquiry.id,
        membership_plan_id=annual_plan.id,
        paid_amount_cents=0,
        created_by="pytest",
    )


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
