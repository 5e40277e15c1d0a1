import os
import sys

from agricart import create_app
from agricart.constants.roles import ROLE_ADMIN
from agricart.extensions import db
from agricart.models import User
from agricart.utils.passwords import hash_password, validate_password

EMAIL = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
PASSWORD = os.environ.get("ADMIN_PASSWORD") or ""
NAME = os.environ.get("ADMIN_NAME") or "AgriCart Admin"

if not EMAIL or not PASSWORD:
    sys.exit("Set ADMIN_EMAIL and ADMIN_PASSWORD.")

ok, msg = validate_password(PASSWORD)
if not ok:
    sys.exit(msg)

app = create_app()

with app.app_context():
    admin = User.query.filter(db.func.lower(User.email) == EMAIL).first()

    if admin:
        print("🔁 Promoting existing user to admin...")
        admin.role = ROLE_ADMIN
        admin.is_active = True
        admin.password_hash = hash_password(PASSWORD)
    else:
        print("🔐 Creating new admin user...")
        admin = User(
            name=NAME,
            email=EMAIL,
            phone=None,
            role=ROLE_ADMIN,
            is_active=True,
            password_hash=hash_password(PASSWORD),
        )
        db.session.add(admin)

    db.session.commit()

    print("✅ Admin ready:", EMAIL)
