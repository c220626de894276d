# make_admin.py
# Usage: python make_admin.py
#
# Creates the admin root user (ADMIN_ACCOUNT / ADMIN_PASSWORD) if it is missing and
# prints its invite code, which the first members register with.

from app import create_app
from extensions import db
from ledger.members import MemberHelper


def make_admin():
    app = create_app()
    with app.app_context():
        db.create_all()
        admin = MemberHelper.ensure_admin_user()
        print(f"Admin root user id={admin.id}, account={admin.account}, invite code={admin.my_invite_code}")


if __name__ == "__main__":
    make_admin()
