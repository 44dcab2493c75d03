import os

from contabil.core.authorization import CAPABILITY_FLAGS
from contabil.core.security import get_password_hash
from contabil.db import models
from contabil.db.session import SessionLocal


def main() -> None:
    username = os.getenv("ADMIN_BOOTSTRAP_USERNAME")
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD")
    if not username or not password:
        raise SystemExit("ADMIN_BOOTSTRAP_USERNAME/ADMIN_BOOTSTRAP_PASSWORD nao definidos.")
    username = username.strip()

    db = SessionLocal()
    try:
        admin = db.query(models.User).filter(models.User.username == username).first()
        if not admin:
            admin = models.User(
                username=username,
                name=os.getenv("ADMIN_BOOTSTRAP_NAME", "Admin Geral"),
                email=os.getenv("ADMIN_BOOTSTRAP_EMAIL"),
                password_hash=get_password_hash(password),
            )
            db.add(admin)
        else:
            admin.password_hash = get_password_hash(password)
        admin.role = models.ROLE_ADMIN_GERAL
        admin.status = "active"
        for flag in CAPABILITY_FLAGS.values():
            setattr(admin, flag, True)
        db.commit()
        print(f"AdminGeral ativo: {admin.username}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
