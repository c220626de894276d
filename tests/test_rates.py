from decimal import Decimal

from extensions import db
from ledger.rates import CommissionRateHelper
from models import CommissionRate


def test_active_rate_has_a_display_default(client):
    assert client.get("/commission-rate/active").get_json() == {"rate": 0.1, "isActive": True}


def test_no_active_rate_counts_as_zero(app):
    assert CommissionRateHelper.global_rate() == Decimal("0")


def test_creating_an_active_rate_deactivates_the_rest(client):
    first = client.post("/commission-rate", json={"rate": 0.05}).get_json()
    second = client.post("/commission-rate", json={"rate": 0.08, "description": "summer"}).get_json()

    assert db.session.get(CommissionRate, first["id"]).is_active is False
    assert db.session.get(CommissionRate, second["id"]).is_active is True
    assert client.get("/commission-rate/active").get_json()["rate"] == 0.08


def test_inactive_rate_leaves_current_one(client, make_rate):
    current = make_rate("0.05")

    response = client.post("/commission-rate", json={"rate": 0.5, "isActive": False})

    assert response.status_code == 201
    assert db.session.get(CommissionRate, current.id).is_active is True
    assert CommissionRateHelper.global_rate() == Decimal("0.05")


def test_activating_on_update(client, make_rate):
    current = make_rate("0.05")
    dormant = make_rate("0.2", is_active=False)

    body = client.put(f"/commission-rate/{dormant.id}", json={"rate": 0.25, "isActive": True}).get_json()

    assert body["rate"] == 0.25
    assert body["isActive"] is True
    assert db.session.get(CommissionRate, current.id).is_active is False


def test_deactivating_on_update_touches_nothing_else(client, make_rate):
    other = make_rate("0.05", is_active=False)
    current = make_rate("0.07")

    client.put(f"/commission-rate/{current.id}", json={"rate": 0.07, "isActive": False})

    assert db.session.get(CommissionRate, other.id).is_active is False
    assert CommissionRateHelper.get_active_rate() is None


def test_effective_rate_adds_user_setting(app, make_user, make_rate, make_setting):
    user = make_user()
    make_rate("0.1")
    make_setting(user, commission_rate="0.05")

    assert CommissionRateHelper.effective_rate(user.id) == Decimal("0.15")


def test_negative_rate_rejected(client):
    response = client.post("/commission-rate", json={"rate": -0.1})
    assert response.status_code == 400


def test_delete(client, make_rate):
    row = make_rate("0.1")
    assert client.delete(f"/commission-rate/{row.id}").status_code == 200
    assert client.delete(f"/commission-rate/{row.id}").get_json()["message"] == "Commission rate not found"
