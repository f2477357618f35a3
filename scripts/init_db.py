import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.sendportal.models import Team, TeamUser, User
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin team and admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@sendportal.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    team_name = (os.environ.get("ADMIN_TEAM_NAME") or "Default Team").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///sendportal.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
            s.flush()

        team = s.query(Team).filter(Team.name == team_name).order_by(Team.id).first()
        if not team:
            team = Team(name=team_name)
            s.add(team)
            s.flush()

        membership = s.get(TeamUser, {"team_id": team.id, "user_id": user.id})
        if not membership:
            s.add(TeamUser(team_id=team.id, user_id=user.id, role="owner"))

        if user.current_team_id is None:
            user.current_team_id = team.id

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print(f"Admin team: {team_name}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
