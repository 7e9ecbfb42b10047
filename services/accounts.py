"""
User accounts: credential checks, default admin seeding and admin-side user management.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, or_

from models.base_model import utcnow
from models.user import User, Role, VerificationStatus
from services.errors import InvalidCredentials, Conflict, NotFound, Forbidden
from utils.security import hash_password, verify_password, burn_password_check

logger = logging.getLogger(__name__)

# Sorting allowlist: API field -> SQLAlchemy column
SORT_COLUMNS = {
    "created_at": User.created_at,
    "name": User.name,
    "email": User.email,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class UserStats:
    total: int
    by_role: dict
    by_status: dict


def like_pattern(term: str) -> str:
    """Substring LIKE pattern for `term` with its own wildcards taken literally (escape char: backslash)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class AccountService:
    def __init__(self, storage, sessions):
        self._storage = storage
        self._sessions = sessions

    def get_user(self, user_id: int) -> User | None:
        return (
            self._storage.get_session().query(User)
            .populate_existing()
            .filter(User.id == user_id)
            .first()
        )

    def find_by_email(self, email: str) -> User | None:
        return self._storage.get_session().query(User).filter(User.email == normalize_email(email)).first()

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials. Unknown email and wrong password fail identically,
        including the time spent hashing.
        """
        user = self.find_by_email(email)
        if user is None:
            burn_password_check(password)
            logger.info("login failed: unknown email")
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.info("login failed for user %s", user.id)
            raise InvalidCredentials()
        logger.info("login succeeded for user %s", user.id)
        return user

    def ensure_default_admin(self, email: str, name: str, password: str) -> User:
        existing = self.find_by_email(email)
        if existing:
            return existing
        with self._storage.transaction() as session:
            admin = User(
                email=normalize_email(email),
                name=name,
                password_hash=hash_password(password),
                role=Role.ADMIN,
                verification_status=VerificationStatus.APPROVED,
            )
            session.add(admin)
        logger.info("seeded default admin %s", admin.email)
        return admin

    def list_users(self, page: int, limit: int, role: Role | None = None,
                   status: VerificationStatus | None = None, search: str | None = None,
                   sort_by: str = "created_at", descending: bool = True):
        query = self._storage.get_session().query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if status is not None:
            query = query.filter(User.verification_status == status)
        if search:
            pattern = like_pattern(search.strip().lower())
            query = query.filter(or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            ))

        total = query.count()
        column = SORT_COLUMNS.get(sort_by, User.created_at)
        rows = (
            query.order_by(column.desc() if descending else column.asc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def stats(self) -> UserStats:
        """User counts for the admin dashboard; every role and status is present, zero included."""
        session = self._storage.get_session()
        by_role = dict(session.query(User.role, func.count(User.id)).group_by(User.role).all())
        by_status = dict(
            session.query(User.verification_status, func.count(User.id))
            .group_by(User.verification_status)
            .all()
        )
        return UserStats(
            total=self._storage.count(User),
            by_role={role: by_role.get(role, 0) for role in Role},
            by_status={status: by_status.get(status, 0) for status in VerificationStatus},
        )

    def create_user(self, email: str, name: str, password: str, role: Role = Role.CITIZEN,
                    status: VerificationStatus | None = None) -> User:
        if self.find_by_email(email):
            raise Conflict("Email already in use")
        if status is None:
            status = VerificationStatus.NONE if role is Role.CITIZEN else VerificationStatus.APPROVED
        with self._storage.transaction() as session:
            user = User(
                email=normalize_email(email),
                name=name,
                password_hash=hash_password(password),
                role=role,
                verification_status=status,
            )
            session.add(user)
        return user

    def update_user(self, user_id: int, changes: dict) -> User:
        """
        Apply admin edits. A password or role change revokes every refresh
        token of the user so the old credentials stop minting access tokens.
        """
        user = self.get_user(user_id)
        if user is None:
            raise NotFound("User not found")

        email = changes.get("email")
        if email and normalize_email(email) != user.email and self.find_by_email(email):
            raise Conflict("Email already in use")

        credentials_changed = False
        with self._storage.transaction():
            if changes.get("name"):
                user.name = changes["name"]
            if email:
                user.email = normalize_email(email)
            if changes.get("password"):
                user.password_hash = hash_password(changes["password"])
                credentials_changed = True
            role = changes.get("role")
            if role is not None and role is not user.role:
                user.role = role
                credentials_changed = True
            status = changes.get("verification_status")
            if status is not None:
                user.verification_status = status
                if status is not VerificationStatus.REJECTED:
                    user.rejection_reason = None
                    user.rejection_date = None
            user.updated_at = utcnow()

        if credentials_changed:
            self._sessions.revoke_all(user.id)
        return user

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise Forbidden("You cannot delete your own account")
        user = self.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        if user.role.is_admin:
            raise Forbidden("Admin accounts cannot be deleted")
        with self._storage.transaction() as session:
            session.delete(user)
        logger.info("user %s deleted by %s", user_id, acting_user_id)
