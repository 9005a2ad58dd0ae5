"""
CLI tests: bootstrap and maintenance commands.
"""

from datetime import timedelta

from app.models import Activity, MembershipPlan, User
from app.time_utils import utcnow


class TestSystemInit:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        assert "PASS Created user: admin (admin@gym.com)" in result.output

        admin = db_session.query(User).filter_by(email="admin@gym.com").one()
        assert admin.role == "ADMIN"
        assert db_session.query(MembershipPlan).count() == 3

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert "already exists, skipping" in result.output
        assert db_session.query(User).count() == 1
        assert db_session.query(MembershipPlan).count() == 3


class TestMaintenance:

    def test_purge_activities(self, app, db_session):
        db_session.add_all([
            Activity(activity_type="Email", description="old", created_at=utcnow() - timedelta(days=120)),
            Activity(activity_type="Email", description="new", created_at=utcnow()),
        ])
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "purge-activities", "--days", "90"])
        assert result.exit_code == 0
        assert "PASS Deleted 1 activities older than 90 days" in result.output
        assert [a.description for a in db_session.query(Activity).all()] == ["new"]

    def test_users_list(self, app, staff_user):
        result = app.test_cli_runner().invoke(args=["users", "list"])
        assert result.exit_code == 0
        assert "frontdesk@gym.com" in result.output
