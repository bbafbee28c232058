import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.feedback.audit import record_event  # noqa: E402
from app.feedback.db import make_engine, make_sessionmaker  # noqa: E402
from app.feedback.models import ROLE_ADMIN, Base, User  # noqa: E402


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> None:
    """
    Seed the bootstrap admin account in an idempotent way.
    Does NOT overwrite an existing admin user's password or role.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///feedback.db").strip()

    engine = make_engine(db_url)
    if create_tables:
        Base.metadata.create_all(bind=engine)

    s = make_sessionmaker(engine)()
    try:
        user = s.query(User).filter(User.username == admin_username).one_or_none()
        if user is None:
            user = User(username=admin_username, password_hash=generate_password_hash(admin_password), role=ROLE_ADMIN)
            s.add(user)
            s.flush()
            record_event(s, actor=None, action="user.seed_admin", entity_type="User", entity_id=str(user.id))
            print(f"Created admin user {admin_username!r}", flush=True)
        else:
            print(f"Admin user {admin_username!r} already exists (role={user.role}); leaving unchanged", flush=True)
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def main() -> None:
    # Local dev convenience: create tables directly (no alembic) and seed.
    seed_only(create_tables="--create-tables" in sys.argv[1:])


if __name__ == "__main__":
    main()
