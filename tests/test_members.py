from datetime import timedelta
from decimal import Decimal

import pytest

from extensions import db
from ledger.exceptions import NotFoundError, PermissionDeniedError
from ledger.members import MemberHelper, SubUserHelper
from models import OrderRecord, RechargeRequest, User, utcnow


def _register(client, account, invite_code, login_password="login-secret", pay_password="pay-secret"):
    return client.post("/auth/register", json={
        "account": account,
        "loginPassword": login_password,
        "payPassword": pay_password,
        "inviteCode": invite_code,
    })


class TestRegistration:

    def test_register_under_inviter(self, client, make_user):
        inviter = make_user(invite_code="INV001")

        response = _register(client, "newcomer", "INV001")

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Registration successful"
        user = db.session.get(User, body["user"]["id"])
        assert user.parent_id == inviter.id
        assert user.invite_code == "INV001"
        assert user.name
        assert len(user.my_invite_code) == 6
        assert user.managed_by_sub_user_id is None

    def test_invitee_of_sub_user_is_managed_by_it(self, client, make_user):
        agent = make_user(account="agent01", is_sub_user=True, invite_code="AGT001")

        body = _register(client, "newcomer", "AGT001").get_json()

        assert db.session.get(User, body["user"]["id"]).managed_by_sub_user_id == agent.id

    def test_unknown_invite_code(self, client):
        response = _register(client, "newcomer", "NOPE00")

        assert response.status_code == 400
        assert response.get_json()["message"] == "Invite code is incorrect or does not exist"
        assert User.query.count() == 0

    def test_duplicate_account(self, client, make_user):
        make_user(account="taken01", invite_code="INV001")

        response = _register(client, "taken01", "INV001")

        assert response.status_code == 400
        assert response.get_json()["message"] == "Account already exists"

    @pytest.mark.parametrize("field, value", [
        ("account", "abc"),
        ("loginPassword", "12345"),
        ("payPassword", "12345"),
    ])
    def test_field_lengths(self, client, make_user, field, value):
        make_user(invite_code="INV001")
        body = {"account": "newcomer", "loginPassword": "login-secret", "payPassword": "pay-secret",
                "inviteCode": "INV001"}
        body[field] = value

        assert client.post("/auth/register", json=body).status_code == 400


class TestLogin:

    def test_member_login_marks_online(self, client, make_user):
        user = make_user(account="member01")

        response = client.post("/auth/login", json={"account": "member01", "password": "login-secret"})

        assert response.status_code == 200
        assert response.get_json()["token"]
        refreshed = db.session.get(User, user.id)
        assert refreshed.is_online is True
        assert refreshed.last_login_at is not None

    def test_bad_password(self, client, make_user):
        make_user(account="member01")

        response = client.post("/auth/login", json={"account": "member01", "password": "wrong"})

        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid account or password"

    def test_logout(self, client, make_user):
        user = make_user(account="member01", is_online=True)

        client.post("/auth/logout", json={"userId": user.id})

        assert db.session.get(User, user.id).is_online is False

    def test_admin_login(self, client):
        response = client.post("/auth/admin-login", json={"account": "admin", "password": "admin-pass"})

        body = response.get_json()
        assert body["user"] == {"id": 0, "account": "admin", "isSubUser": False}

    def test_sub_user_back_office_login(self, client, make_user):
        agent = make_user(account="agent01", is_sub_user=True)

        response = client.post("/auth/admin-login", json={"account": "agent01", "password": "login-secret"})

        body = response.get_json()
        assert body["user"]["id"] == agent.id
        assert body["user"]["isSubUser"] is True

    def test_member_cannot_use_back_office_login(self, client, make_user):
        make_user(account="member01")

        response = client.post("/auth/admin-login", json={"account": "member01", "password": "login-secret"})

        assert response.status_code == 400


class TestSelfService:

    def test_overview(self, client, make_user, make_rate, make_record):
        user = make_user(balance="12.5")
        make_rate("0.1")
        make_record(user, amount="100")

        body = client.get(f"/user/me?userId={user.id}").get_json()

        assert body["user"]["balance"] == 12.5
        assert body["totalCommission"] == 10.0
        assert body["todayCommission"] == 10.0

    def test_balance_adjustment_cannot_go_negative(self, client, make_user):
        user = make_user(balance="10")

        ok = client.put("/user/balance", json={"userId": user.id, "amount": -4})
        refused = client.put("/user/balance", json={"userId": user.id, "amount": -7})

        assert ok.get_json()["balance"] == 6.0
        assert refused.status_code == 400
        assert db.session.get(User, user.id).balance == Decimal("6.00")

    def test_change_pay_password(self, client, make_user):
        user = make_user()

        wrong = client.put("/user/password/payment",
                           json={"userId": user.id, "oldPassword": "nope", "newPassword": "new-pay-1"})
        right = client.put("/user/password/payment",
                           json={"userId": user.id, "oldPassword": "pay-secret", "newPassword": "new-pay-1"})

        assert wrong.get_json()["message"] == "Invalid old password"
        assert right.status_code == 200
        assert db.session.get(User, user.id).check_pay_password("new-pay-1")


class TestMemberManagement:

    def test_list_excludes_admin_and_sub_users(self, client, make_user, admin_headers):
        make_user(account="admin")
        make_user(account="agent01", is_sub_user=True)
        member = make_user(account="member01")

        rows = client.get("/users", headers=admin_headers).get_json()

        assert [r["id"] for r in rows] == [member.id]
        assert rows[0]["orderStats"]["total"] == 0
        assert rows[0]["difference"] is None

    def test_online_members_first_by_latest_login(self, app, make_user):
        now = utcnow()
        offline_old = make_user(account="offline01")
        online_earlier = make_user(account="online01", is_online=True, last_login_at=now - timedelta(hours=1))
        online_latest = make_user(account="online02", is_online=True, last_login_at=now)
        offline_new = make_user(account="offline02")

        rows = MemberHelper.list_members()

        assert [r["id"] for r in rows] == [online_latest.id, online_earlier.id, offline_new.id, offline_old.id]

    def test_sub_user_sees_only_its_members(self, client, make_user, sub_user_headers):
        agent = make_user(account="agent01", is_sub_user=True)
        mine = make_user(managed_by=agent)
        make_user()

        rows = client.get("/users", headers=sub_user_headers(agent)).get_json()

        assert [r["id"] for r in rows] == [mine.id]

    def test_row_carries_batch_and_funding_figures(self, app, make_user, make_setting, make_recharge):
        user = make_user()
        make_setting(user, max_orders=4, commission_rate="0.02")
        make_recharge(user, "60")

        row = MemberHelper.list_members()[0]

        assert row["orderSetting"]["maxOrders"] == 4
        assert row["orderSetting"]["commissionRate"] == 0.02
        assert row["orderStats"]["pending"] == 4
        assert row["totalRecharged"] == 60.0

    def test_team(self, client, make_user):
        root = make_user()
        child = make_user(parent=root)
        make_user(parent=child)

        body = client.get(f"/users/{child.id}/team").get_json()

        assert body["parent"]["id"] == root.id
        assert len(body["children"]) == 1
        assert body["user"]["parentId"] == root.id

    def test_reset_passwords_requires_one(self, client, make_user):
        user = make_user()
        response = client.put(f"/users/{user.id}/password", json={})
        assert response.get_json()["message"] == "No password provided"

    def test_remark(self, client, make_user):
        user = make_user()
        body = client.put(f"/users/{user.id}/remark", json={"remark": "vip"}).get_json()
        assert body["remark"] == "vip"


class TestAssignment:

    def test_admin_assigns_and_unassigns(self, client, make_user, admin_headers):
        agent = make_user(account="agent01", is_sub_user=True)
        member = make_user()

        assigned = client.put(f"/users/{member.id}/assign-sub-user", json={"subUserId": agent.id},
                              headers=admin_headers).get_json()
        cleared = client.put(f"/users/{member.id}/assign-sub-user", json={"subUserId": 0},
                             headers=admin_headers).get_json()

        assert assigned["managedBySubUserId"] == agent.id
        assert cleared["managedBySubUserId"] is None

    def test_sub_user_may_not_assign(self, client, make_user, sub_user_headers):
        agent = make_user(account="agent01", is_sub_user=True)
        member = make_user()

        response = client.put(f"/users/{member.id}/assign-sub-user", json={"subUserId": agent.id},
                              headers=sub_user_headers(agent))

        assert response.status_code == 403
        assert response.get_json()["message"] == "Only admin can assign members"

    def test_target_must_be_a_sub_user(self, app, make_user):
        member = make_user()
        other = make_user()
        with pytest.raises(NotFoundError) as excinfo:
            MemberHelper.assign_sub_user(member.id, other.id)
        assert excinfo.value.message == "Sub user not found"

    def test_sub_user_actor_object(self, app, make_user):
        agent = make_user(account="agent01", is_sub_user=True)
        member = make_user()

        class Actor:
            id = agent.id
            is_sub_user = True

        with pytest.raises(PermissionDeniedError):
            MemberHelper.assign_sub_user(member.id, agent.id, Actor())


class TestDeletion:

    def test_delete_member_removes_owned_rows_and_detaches_invitees(self, client, make_user, make_setting,
                                                                    make_record, make_recharge):
        parent = make_user()
        child = make_user(parent=parent)
        make_setting(parent)
        make_record(parent)
        make_recharge(parent, "10")
        parent_id, child_id = parent.id, child.id

        response = client.delete(f"/users/{parent_id}")

        assert response.status_code == 200
        assert db.session.get(User, parent_id) is None
        assert db.session.get(User, child_id).parent_id is None
        assert OrderRecord.query.count() == 0
        assert RechargeRequest.query.count() == 0

    def test_delete_sub_user_releases_members(self, client, make_user, make_recharge):
        agent = make_user(account="agent01", is_sub_user=True)
        member = make_user(managed_by=agent)
        recharge = make_recharge(member, "10")
        recharge.created_by_sub_user_id = agent.id
        db.session.commit()
        agent_id, member_id, recharge_id = agent.id, member.id, recharge.id

        response = client.delete(f"/sub-users/{agent_id}")

        assert response.status_code == 200
        assert db.session.get(User, agent_id) is None
        assert db.session.get(User, member_id).managed_by_sub_user_id is None
        assert db.session.get(RechargeRequest, recharge_id).created_by_sub_user_id is None

    def test_delete_unknown(self, client):
        assert client.delete("/users/9999").status_code == 404


class TestSubUsers:

    def test_create_sub_user_hangs_under_admin_row(self, client):
        response = client.post("/sub-users", json={
            "account": "agent01", "loginPassword": "login-secret", "payPassword": "pay-secret",
        })

        assert response.status_code == 201
        body = response.get_json()
        admin = User.query.filter_by(account="admin").one()
        assert body["parentAdminId"] == admin.id
        assert len(body["myInviteCode"]) == 6
        assert admin.my_invite_code

    def test_list_sub_users(self, client):
        SubUserHelper.create_sub_user("agent01", "login-secret", "pay-secret")
        SubUserHelper.create_sub_user("agent02", "login-secret", "pay-secret")

        rows = client.get("/sub-users").get_json()

        assert [r["account"] for r in rows] == ["agent02", "agent01"]
        assert rows[0]["parentAdmin"]["account"] == "admin"

    def test_duplicate_account(self, client, make_user):
        make_user(account="agent01")
        response = client.post("/sub-users", json={
            "account": "agent01", "loginPassword": "login-secret", "payPassword": "pay-secret",
        })
        assert response.get_json()["message"] == "Account already exists"

    def test_backfill_invite_codes(self, client, make_user):
        agent = make_user(account="agent01", is_sub_user=True)
        agent.my_invite_code = None
        db.session.commit()

        body = client.post("/sub-users/generate-invite-codes").get_json()

        assert body["message"] == "Generated invite codes for 1 sub-users"
        assert body["results"][0]["status"] == "success"
        assert db.session.get(User, agent.id).my_invite_code
