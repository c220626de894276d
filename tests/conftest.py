"""
Shared fixtures: a fresh app + in-memory database per test, a test client,
and small factories for the rows most tests need.
"""
import os
import tempfile
from decimal import Decimal

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="taskhub-logs-"))

import pytest  # noqa: E402
from flask import g  # noqa: E402
from flask.testing import FlaskClient  # noqa: E402

from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from extensions import db  # noqa: E402
from models import CommissionRate, OrderRecord, OrderSetting, RechargeRequest, User, utcnow  # noqa: E402


class FreshIdentityClient(FlaskClient):
    """Requests reuse the fixture's app context, so drop the identity Flask-Login cached on g."""

    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        return super().open(*args, **kwargs)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.test_client_class = FreshIdentityClient
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make_user(account=None, balance="0", pay_password="pay-secret", login_password="login-secret",
                   is_sub_user=False, parent=None, managed_by=None, invite_code=None, **extra):
        counter["n"] += 1
        user = User(
            account=account or f"member{counter['n']:03d}",
            name=extra.pop("name", None),
            balance=Decimal(str(balance)),
            my_invite_code=invite_code or f"CODE{counter['n']:02d}",
            parent_id=parent.id if parent else None,
            is_sub_user=is_sub_user,
            managed_by_sub_user_id=managed_by.id if managed_by else None,
            **extra,
        )
        user.set_login_password(login_password)
        user.set_pay_password(pay_password)
        session.add(user)
        session.commit()
        return user

    return _make_user


@pytest.fixture
def make_setting(session):
    """Open a batch and point the user at it, optionally back-dated."""

    def _make_setting(user, max_orders=10, commission_rate="0", age=None):
        setting = OrderSetting(user_id=user.id, max_orders=max_orders, commission_rate=Decimal(str(commission_rate)))
        if age is not None:
            setting.created_at = utcnow() - age
        session.add(setting)
        session.flush()
        user.current_order_setting_id = setting.id
        session.commit()
        return setting

    return _make_setting


@pytest.fixture
def make_record(session):

    def _make_record(user, amount="10", status="completed", description=None, age=None, commission_override=None):
        record = OrderRecord(
            user_id=user.id,
            order_type="pre-order",
            amount=Decimal(str(amount)),
            status=status,
            description=description,
            commission_override=commission_override,
        )
        if age is not None:
            record.created_at = utcnow() - age
        session.add(record)
        session.commit()
        return record

    return _make_record


@pytest.fixture
def make_rate(session):

    def _make_rate(rate, is_active=True):
        row = CommissionRate(rate=Decimal(str(rate)), is_active=is_active)
        session.add(row)
        session.commit()
        return row

    return _make_rate


@pytest.fixture
def make_recharge(session):

    def _make_recharge(user, amount, status="approved"):
        row = RechargeRequest(user_id=user.id, amount=Decimal(str(amount)), status=status)
        session.add(row)
        session.commit()
        return row

    return _make_recharge


@pytest.fixture
def admin_headers(client):
    response = client.post("/auth/admin-login", json={"account": "admin", "password": "admin-pass"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def sub_user_headers(client):

    def _headers(sub_user, password="login-secret"):
        response = client.post("/auth/admin-login", json={"account": sub_user.account, "password": password})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.get_json()['token']}"}

    return _headers
