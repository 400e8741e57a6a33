"""
Employee service tests.

Verifies:
- Employee ids are allocated per role prefix
- Login issues a session and records history
- Password policy and bcrypt verification
- Deactivation and password reset revoke sessions
"""

import pytest

from conftest import PASSWORD
from shopledger.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.models import LoginHistory, SessionToken
from shopledger.services import employee_service, session_service


class TestCreateEmployee:
    def test_ids_follow_role_prefix(self, setup_roles):
        admin = employee_service.create_employee("Root", PASSWORD, "admin")
        first = employee_service.create_employee("Ann", PASSWORD, "biller")
        second = employee_service.create_employee("Ben", PASSWORD, "biller")
        stock = employee_service.create_employee("Cal", PASSWORD, "Inventory")

        assert admin.employee_id == "ADM001"
        assert first.employee_id == "BIL001"
        assert second.employee_id == "BIL002"
        assert stock.employee_id == "INV001"
        assert stock.role_name == "inventory"

    def test_password_is_hashed(self, biller_user):
        assert biller_user.password_hash != PASSWORD
        assert employee_service.verify_password(PASSWORD, biller_user.password_hash)
        assert not employee_service.verify_password("Wrong123!", biller_user.password_hash)

    def test_explicit_id_must_be_unique(self, admin_user):
        with pytest.raises(ConflictError):
            employee_service.create_employee("Other", PASSWORD, "admin", employee_id=admin_user.employee_id)

    def test_unknown_role(self, setup_roles):
        with pytest.raises(ValidationError):
            employee_service.create_employee("Ann", PASSWORD, "owner")

    @pytest.mark.parametrize("password", ["short1!", "alllower123!", "ALLUPPER123!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, setup_roles, password):
        with pytest.raises(ValidationError):
            employee_service.create_employee("Ann", password, "biller")

    def test_malformed_hash_never_verifies(self):
        assert employee_service.verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class TestAuthenticate:
    def test_login_issues_session_and_history(self, biller_user):
        user, token = employee_service.authenticate(
            biller_user.employee_id.lower(), PASSWORD, ip_address="10.0.0.5", user_agent="pytest"
        )

        assert user.id == biller_user.id
        assert user.last_login_at is not None
        context = session_service.validate_session(token)
        assert context.user.id == biller_user.id
        assert context.session.ip_address == "10.0.0.5"
        history = employee_service.login_history(biller_user.id)
        assert len(history) == 1
        assert history[0].ip_address == "10.0.0.5"

    def test_wrong_password(self, biller_user):
        with pytest.raises(AuthenticationError):
            employee_service.authenticate(biller_user.employee_id, "Wrong123!")
        assert db.session.query(LoginHistory).count() == 0

    def test_unknown_employee(self, setup_roles):
        with pytest.raises(AuthenticationError):
            employee_service.authenticate("BIL999", PASSWORD)

    def test_logout_closes_history_entry(self, biller_user):
        _user, token = employee_service.authenticate(biller_user.employee_id, PASSWORD)

        assert employee_service.logout(token) is True

        assert session_service.validate_session(token) is None
        assert employee_service.login_history(biller_user.id)[0].logout_at is not None
        assert employee_service.logout(token) is False


class TestAccountChanges:
    def test_deactivation_revokes_sessions_and_blocks_login(self, admin_user, biller_user):
        _user, token = employee_service.authenticate(biller_user.employee_id, PASSWORD)

        employee_service.set_status(biller_user.id, False, reason="Left the company", actor_id=admin_user.id)

        assert session_service.validate_session(token) is None
        assert db.session.query(SessionToken).filter_by(user_id=biller_user.id, is_revoked=False).count() == 0
        with pytest.raises(AuthenticationError):
            employee_service.authenticate(biller_user.employee_id, PASSWORD)

    def test_reactivation_clears_reason(self, admin_user, biller_user):
        employee_service.set_status(biller_user.id, False, reason="Leave", actor_id=admin_user.id)
        user = employee_service.set_status(biller_user.id, True, actor_id=admin_user.id)
        assert user.is_active is True
        assert user.inactive_reason is None

    def test_cannot_deactivate_self(self, admin_user):
        with pytest.raises(ConflictError):
            employee_service.set_status(admin_user.id, False, actor_id=admin_user.id)

    def test_cannot_drop_own_admin_role(self, admin_user):
        with pytest.raises(ConflictError):
            employee_service.set_role(admin_user.id, "manager", actor_id=admin_user.id)

    def test_role_change_keeps_employee_id(self, admin_user, biller_user):
        user = employee_service.set_role(biller_user.id, "manager", actor_id=admin_user.id)
        assert user.role_name == "manager"
        assert user.employee_id == biller_user.employee_id

    def test_reset_password_revokes_sessions(self, biller_user):
        _user, token = employee_service.authenticate(biller_user.employee_id, PASSWORD)

        employee_service.reset_password(biller_user.id, "Fresh456#")

        assert session_service.validate_session(token) is None
        employee_service.authenticate(biller_user.employee_id, "Fresh456#")

    def test_change_password_requires_current(self, biller_user):
        with pytest.raises(AuthenticationError):
            employee_service.change_password(biller_user.id, "Wrong123!", "Fresh456#")
        employee_service.change_password(biller_user.id, PASSWORD, "Fresh456#")
        employee_service.authenticate(biller_user.employee_id, "Fresh456#")

    def test_update_rejects_unknown_fields(self, biller_user):
        with pytest.raises(ValidationError):
            employee_service.update_employee(biller_user.id, {"employee_id": "BIL900"})
        user = employee_service.update_employee(biller_user.id, {"username": "Counter Two"})
        assert user.username == "Counter Two"

    def test_missing_employee(self, setup_roles):
        with pytest.raises(NotFoundError):
            employee_service.get_employee(31337)

    def test_list_filters(self, admin_user, biller_user, inventory_user):
        employee_service.set_status(inventory_user.id, False, actor_id=admin_user.id)

        active = employee_service.list_employees(include_inactive=False)
        billers = employee_service.list_employees(role_name="biller")

        assert inventory_user.id not in [u.id for u in active]
        assert [u.id for u in billers] == [biller_user.id]
