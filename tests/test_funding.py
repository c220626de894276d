from decimal import Decimal

import pytest

from extensions import db
from ledger.exceptions import AlreadyProcessedError, InsufficientBalanceError
from ledger.funding import BalanceManager, RechargeManager, WithdrawalManager
from models import RechargeRequest, User, WithdrawRequest


def _balance(user_id):
    return db.session.get(User, user_id).balance


def _withdraw(client, user, amount=40, pay_password="pay-secret", **extra):
    body = {"userId": user.id, "amount": amount, "payPassword": pay_password}
    body.update(extra)
    return client.post("/withdraws", json=body)


class TestWithdrawSubmit:

    def test_submit_reserves_the_amount(self, client, make_user):
        user = make_user(balance="100")

        response = _withdraw(client, user, walletAddress="T-wallet-1")

        assert response.status_code == 200
        body = response.get_json()
        assert body["withdraw"]["status"] == "pending"
        assert body["withdraw"]["walletAddress"] == "T-wallet-1"
        assert body["user"]["balance"] == 60.0
        assert _balance(user.id) == Decimal("60.00")
        assert db.session.get(User, user.id).wallet_address == "T-wallet-1"

    def test_wrong_pay_password(self, client, make_user):
        user = make_user(balance="100")

        response = _withdraw(client, user, pay_password="nope")

        assert response.status_code == 400
        assert response.get_json()["message"] == "Payment password is incorrect"
        assert _balance(user.id) == Decimal("100.00")
        assert WithdrawRequest.query.count() == 0

    def test_insufficient_balance(self, client, make_user):
        user = make_user(balance="20")

        response = _withdraw(client, user, amount=50)

        assert response.status_code == 400
        assert response.get_json()["message"] == "Insufficient balance for withdraw"
        assert _balance(user.id) == Decimal("20.00")

    def test_below_minimum(self, client, make_user):
        user = make_user(balance="100")

        response = _withdraw(client, user, amount=5)

        assert response.status_code == 400
        assert "Minimum withdrawal amount" in response.get_json()["message"]

    def test_unknown_user(self, client):
        response = client.post("/withdraws", json={"userId": 404, "amount": 40, "payPassword": "pay-secret"})
        assert response.status_code == 404

    def test_debit_never_overdraws(self, app, make_user):
        user = make_user(balance="10")
        with pytest.raises(InsufficientBalanceError):
            BalanceManager.debit(user.id, Decimal("10.01"))
        db.session.rollback()
        assert _balance(user.id) == Decimal("10.00")


class TestWithdrawReview:

    def test_reject_returns_the_reserved_amount(self, client, make_user):
        user = make_user(balance="100")
        withdraw_id = _withdraw(client, user).get_json()["withdraw"]["id"]

        response = client.put(f"/withdraws/{withdraw_id}/status", json={"status": "rejected", "note": "bad wallet"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["withdraw"]["status"] == "rejected"
        assert body["withdraw"]["note"] == "bad wallet"
        assert body["user"]["balance"] == 100.0
        assert _balance(user.id) == Decimal("100.00")

    def test_approve_keeps_the_debit(self, client, make_user):
        user = make_user(balance="100")
        withdraw_id = _withdraw(client, user).get_json()["withdraw"]["id"]

        response = client.put(f"/withdraws/{withdraw_id}/status", json={"status": "approved"})

        assert "user" not in response.get_json()
        assert _balance(user.id) == Decimal("60.00")

    def test_second_review_is_rejected(self, client, make_user):
        user = make_user(balance="100")
        withdraw_id = _withdraw(client, user).get_json()["withdraw"]["id"]
        client.put(f"/withdraws/{withdraw_id}/status", json={"status": "rejected"})

        response = client.put(f"/withdraws/{withdraw_id}/status", json={"status": "rejected"})

        assert response.status_code == 400
        assert response.get_json()["message"] == "Withdraw request already processed"
        assert _balance(user.id) == Decimal("100.00")

    def test_claim_is_conditional_on_pending(self, app, make_user):
        user = make_user()
        row = WithdrawRequest(user_id=user.id, amount=Decimal("5"), status="approved")
        db.session.add(row)
        db.session.commit()

        with pytest.raises(AlreadyProcessedError):
            BalanceManager.claim_pending(WithdrawRequest, row.id, {WithdrawRequest.status: "rejected"})

    def test_invalid_status(self, client, make_user):
        user = make_user(balance="100")
        withdraw_id = _withdraw(client, user).get_json()["withdraw"]["id"]

        response = client.put(f"/withdraws/{withdraw_id}/status", json={"status": "pending"})

        assert response.status_code == 400

    def test_sub_user_review_takes_over_the_member(self, client, make_user, sub_user_headers):
        sub_user = make_user(account="agent01", is_sub_user=True)
        user = make_user(balance="100")
        withdraw_id = _withdraw(client, user).get_json()["withdraw"]["id"]

        client.put(f"/withdraws/{withdraw_id}/status", json={"status": "approved"},
                   headers=sub_user_headers(sub_user))

        assert db.session.get(WithdrawRequest, withdraw_id).processed_by_sub_user_id == sub_user.id
        assert db.session.get(User, user.id).managed_by_sub_user_id == sub_user.id


class TestRecharges:

    def test_approve_credits_the_balance(self, client, make_user):
        user = make_user(balance="5")
        recharge = client.post("/recharges", json={"userId": user.id, "amount": 50}).get_json()
        assert recharge["status"] == "pending"
        assert _balance(user.id) == Decimal("5.00")

        response = client.put(f"/recharges/{recharge['id']}/status", json={"status": "approved"})

        assert response.get_json()["status"] == "approved"
        assert _balance(user.id) == Decimal("55.00")

    def test_reject_leaves_balance(self, client, make_user):
        user = make_user(balance="5")
        recharge = client.post("/recharges", json={"userId": user.id, "amount": 50}).get_json()

        client.put(f"/recharges/{recharge['id']}/status", json={"status": "rejected"})

        assert _balance(user.id) == Decimal("5.00")

    def test_second_review_is_rejected(self, client, make_user):
        user = make_user()
        recharge = client.post("/recharges", json={"userId": user.id, "amount": 50}).get_json()
        client.put(f"/recharges/{recharge['id']}/status", json={"status": "approved"})

        response = client.put(f"/recharges/{recharge['id']}/status", json={"status": "approved"})

        assert response.status_code == 400
        assert response.get_json()["message"] == "Recharge request already processed"
        assert _balance(user.id) == Decimal("50.00")

    def test_pending_count(self, client, make_user, make_recharge):
        user = make_user()
        make_recharge(user, "10", status="pending")
        make_recharge(user, "10", status="pending")
        make_recharge(user, "10", status="approved")

        assert client.get("/recharges/pending/count").get_json() == {"count": 2}

    def test_blank_voucher_is_stored_as_null(self, app, make_user):
        user = make_user()
        recharge = RechargeManager.create(user.id, "10", voucher_image="   ")
        assert recharge.voucher_image is None

    def test_sub_user_created_recharge_takes_over_the_member(self, client, make_user, sub_user_headers):
        sub_user = make_user(account="agent01", is_sub_user=True)
        user = make_user()

        body = client.post("/recharges", json={"userId": user.id, "amount": 10},
                           headers=sub_user_headers(sub_user)).get_json()

        assert body["createdBySubUserId"] == sub_user.id
        assert db.session.get(User, user.id).managed_by_sub_user_id == sub_user.id

    def test_review_does_not_overwrite_creator(self, client, make_user, sub_user_headers):
        creator = make_user(account="agent01", is_sub_user=True)
        reviewer = make_user(account="agent02", is_sub_user=True)
        user = make_user()
        recharge_id = client.post("/recharges", json={"userId": user.id, "amount": 10},
                                  headers=sub_user_headers(creator)).get_json()["id"]

        client.put(f"/recharges/{recharge_id}/status", json={"status": "approved"},
                   headers=sub_user_headers(reviewer))

        assert db.session.get(RechargeRequest, recharge_id).created_by_sub_user_id == creator.id


class TestScoping:

    def test_admin_sees_everything_sub_user_sees_its_members(self, client, make_user, make_recharge,
                                                            admin_headers, sub_user_headers):
        agent = make_user(account="agent01", is_sub_user=True)
        other_agent = make_user(account="agent02", is_sub_user=True)
        mine = make_user(managed_by=agent)
        theirs = make_user(managed_by=other_agent)
        make_recharge(mine, "10", status="pending")
        make_recharge(theirs, "20", status="pending")

        admin_view = client.get("/recharges", headers=admin_headers).get_json()
        agent_view = client.get("/recharges", headers=sub_user_headers(agent)).get_json()

        assert len(admin_view) == 2
        assert [r["userId"] for r in agent_view] == [mine.id]
        assert agent_view[0]["user"]["account"] == mine.account

    def test_sub_user_sees_withdraws_it_processed(self, app, make_user):
        agent = make_user(account="agent01", is_sub_user=True)
        member = make_user()
        processed = WithdrawRequest(user_id=member.id, amount=Decimal("12"), status="approved",
                                    processed_by_sub_user_id=agent.id)
        untouched = WithdrawRequest(user_id=member.id, amount=Decimal("13"), status="pending")
        db.session.add_all([processed, untouched])
        db.session.commit()

        class Actor:
            id = agent.id
            is_sub_user = True

        assert [w.id for w in WithdrawalManager.list_for(Actor())] == [processed.id]
        assert len(WithdrawalManager.list_for(None)) == 2

    def test_member_history(self, client, make_user, make_recharge):
        user = make_user()
        other = make_user()
        make_recharge(user, "10")
        make_recharge(other, "10")

        assert len(client.get(f"/recharges/user/{user.id}").get_json()) == 1


def _failing_credit(user_id, amount):
    raise RuntimeError("balance update failed")


class TestAllOrNothing:

    def test_failed_refund_keeps_withdraw_pending(self, app, make_user, monkeypatch):
        user = make_user(balance="100")
        withdraw, _ = WithdrawalManager.submit(user.id, 40, "pay-secret")
        user_id, withdraw_id = user.id, withdraw.id
        monkeypatch.setattr(BalanceManager, "credit", staticmethod(_failing_credit))

        with pytest.raises(RuntimeError):
            WithdrawalManager.review(withdraw_id, "rejected")

        assert db.session.get(WithdrawRequest, withdraw_id).status == "pending"
        assert _balance(user_id) == Decimal("60.00")

    def test_failed_credit_keeps_recharge_pending(self, app, make_user, make_recharge, monkeypatch):
        user = make_user(balance="5")
        recharge = make_recharge(user, 50, status="pending")
        user_id, recharge_id = user.id, recharge.id
        monkeypatch.setattr(BalanceManager, "credit", staticmethod(_failing_credit))

        with pytest.raises(RuntimeError):
            RechargeManager.review(recharge_id, "approved")

        assert db.session.get(RechargeRequest, recharge_id).status == "pending"
        assert _balance(user_id) == Decimal("5.00")
