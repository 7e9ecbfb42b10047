"""
Identity-verification workflow.

    none -> pending -> approved | rejected | needs_info
    approved | rejected | needs_info -> pending   (validator reopen)
    rejected -> pending                           (citizen reapplies, new application row)

Each validator decision writes the audit entry, the application status and the
user's verification status in one transaction. The status transition is a
compare-and-set on the application's current status, so two validators acting
on the same application at once cannot both succeed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update

from models.base_model import utcnow
from models.user import User, Role, VerificationStatus
from models.application import Application, ApplicationStatus
from models.validator_action import ValidatorAction, ReviewAction
from services.accounts import normalize_email
from services.errors import Conflict, NotFound, InvalidCredentials
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

REOPEN_NOTE = "Application reopened for re-review"
REAPPLY_CONFLICT = "Can only reapply if previous application was rejected"

RESOLVED_STATUSES = (
    ApplicationStatus.APPROVED,
    ApplicationStatus.REJECTED,
    ApplicationStatus.NEEDS_INFO,
)

# Statuses in which the citizen may still change documents
OPEN_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.NEEDS_INFO)


@dataclass(frozen=True)
class PersonalInfo:
    email: str
    first_name: str
    last_name: str
    address: str
    phone: str
    dob: str
    middle_name: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.middle_name, self.last_name) if part)


@dataclass(frozen=True)
class Submission:
    user: User
    application: Application
    is_reapplication: bool


class _StatusChanged(Exception):
    pass


class VerificationService:
    def __init__(self, storage):
        self._storage = storage

    def _session(self):
        return self._storage.get_session()

    def get(self, application_id: int) -> Application:
        application = (
            self._session().query(Application)
            .populate_existing()
            .filter(Application.id == application_id)
            .first()
        )
        if application is None:
            raise NotFound("Application not found")
        return application

    def latest_application(self, user_id: int) -> Application | None:
        return (
            self._session().query(Application)
            .populate_existing()
            .filter(Application.user_id == user_id)
            .order_by(Application.created_at.desc(), Application.id.desc())
            .first()
        )

    def queue(self) -> list[Application]:
        """Pending applications, oldest first."""
        return (
            self._session().query(Application)
            .populate_existing()
            .filter(Application.status == ApplicationStatus.PENDING)
            .order_by(Application.created_at.asc(), Application.id.asc())
            .all()
        )

    def history(self, status: ApplicationStatus | None = None) -> list[Application]:
        """Resolved applications, most recently updated first; optionally one status only."""
        query = self._session().query(Application).populate_existing()
        if status is not None and status in RESOLVED_STATUSES:
            query = query.filter(Application.status == status)
        else:
            query = query.filter(Application.status.in_(RESOLVED_STATUSES))
        return query.order_by(Application.updated_at.desc(), Application.id.desc()).all()

    def actions_for(self, application_id: int) -> list[ValidatorAction]:
        return (
            self._session().query(ValidatorAction)
            .filter(ValidatorAction.application_id == application_id)
            .order_by(ValidatorAction.id.asc())
            .all()
        )

    def submit(self, info: PersonalInfo, password: str) -> Submission:
        """
        Register a citizen and open a pending application.

        A previously rejected citizen may submit again with the same email: a
        new application row is opened (the old one stays as history) and the
        account returns to pending. The password must match the existing
        account. Any other existing email is a conflict.
        """
        email = normalize_email(info.email)
        now = utcnow()
        existing = self._session().query(User).populate_existing().filter(User.email == email).first()

        if existing is not None and existing.verification_status is not VerificationStatus.REJECTED:
            raise Conflict("Email already registered")
        if existing is not None and not verify_password(password, existing.password_hash):
            logger.info("reapplication refused for user %s: wrong password", existing.id)
            raise InvalidCredentials()

        with self._storage.transaction() as session:
            if existing is None:
                user = User(
                    email=email,
                    name=info.full_name,
                    password_hash=hash_password(password),
                    role=Role.CITIZEN,
                    verification_status=VerificationStatus.PENDING,
                )
                session.add(user)
                session.flush()
            else:
                user = existing
                user.name = info.full_name
                user.verification_status = VerificationStatus.PENDING
                user.rejection_reason = None
                user.rejection_date = None
                user.updated_at = now

            application = Application(
                user_id=user.id,
                full_name=info.full_name,
                address=info.address,
                phone=info.phone,
                dob=info.dob,
                status=ApplicationStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(application)

        logger.info("application %s submitted by user %s", application.id, user.id)
        return Submission(user=user, application=application, is_reapplication=existing is not None)

    def reapply(self, user_id: int, changes: dict | None = None) -> Submission:
        """
        Signed-in reapplication for a rejected citizen.

        A new pending application is opened from the most recent one. Keys of
        `changes` (first_name, middle_name, last_name, address, phone, dob,
        id_card_front, id_card_back, selfie_image) replace the carried-over
        values. The user's rejection is cleared in the same transaction.
        """
        changes = {key: value for key, value in (changes or {}).items() if value is not None}
        user = self._session().query(User).populate_existing().filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")
        if user.verification_status is not VerificationStatus.REJECTED:
            raise Conflict(REAPPLY_CONFLICT)
        previous = self.latest_application(user_id)
        if previous is None:
            raise NotFound("No previous application found")

        full_name = previous.full_name
        if "first_name" in changes:
            full_name = " ".join(
                changes[key] for key in ("first_name", "middle_name", "last_name") if changes.get(key)
            )
        selfie_changed = "selfie_image" in changes
        now = utcnow()

        with self._storage.transaction() as session:
            # Two reapplications racing for the same rejection: only one flips it
            result = session.execute(
                update(User)
                .where(User.id == user_id, User.verification_status == VerificationStatus.REJECTED)
                .values(
                    name=full_name,
                    verification_status=VerificationStatus.PENDING,
                    rejection_reason=None,
                    rejection_date=None,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                raise Conflict(REAPPLY_CONFLICT)

            application = Application(
                user_id=user_id,
                full_name=full_name,
                address=changes.get("address", previous.address),
                phone=changes.get("phone", previous.phone),
                dob=changes.get("dob", previous.dob),
                id_card_front=changes.get("id_card_front", previous.id_card_front),
                id_card_back=changes.get("id_card_back", previous.id_card_back),
                selfie_image=changes.get("selfie_image", previous.selfie_image),
                ai_analysis_json=None if selfie_changed else previous.ai_analysis_json,
                status=ApplicationStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(application)

        logger.info("user %s reapplied with application %s (previous %s)", user_id, application.id, previous.id)
        user = self._session().query(User).populate_existing().filter(User.id == user_id).first()
        return Submission(user=user, application=application, is_reapplication=True)

    def _update_open(self, session, application_id: int, **values) -> None:
        """
        Write citizen-supplied fields only while the application is still open.
        The status test is part of the UPDATE, so a validator decision that
        commits first makes this a conflict instead of being overwritten.
        """
        result = session.execute(
            update(Application)
            .where(Application.id == application_id, Application.status.in_(OPEN_STATUSES))
            .values(**values)
        )
        if result.rowcount != 1:
            raise Conflict("Application is no longer open for changes")

    def attach_documents(self, user_id: int, id_card_front: str, id_card_back: str) -> Application:
        application = self.latest_application(user_id)
        if application is None:
            raise NotFound("Application not found")
        with self._storage.transaction() as session:
            self._update_open(
                session,
                application.id,
                id_card_front=id_card_front,
                id_card_back=id_card_back,
                updated_at=utcnow(),
            )
        return self.get(application.id)

    def attach_selfie(self, user_id: int, selfie_image: str, ai_analysis: str | None = None) -> Application:
        """
        Final registration step. Also the citizen's answer to a request for
        more information: a needs_info application goes back to pending.
        """
        application = self.latest_application(user_id)
        if application is None:
            raise NotFound("Application not found")

        now = utcnow()
        with self._storage.transaction() as session:
            self._update_open(
                session,
                application.id,
                selfie_image=selfie_image,
                ai_analysis_json=ai_analysis,
                status=ApplicationStatus.PENDING,
                updated_at=now,
            )
            session.execute(
                update(User)
                .where(User.id == user_id)
                .values(verification_status=VerificationStatus.PENDING, updated_at=now)
            )
        return self.get(application.id)

    def _transition(self, application_id: int, validator_id: int, action: ReviewAction,
                    notes: str | None, expect_pending: bool) -> Application:
        application = self.get(application_id)
        now = utcnow()
        new_status = action.resulting_status
        user_status = VerificationStatus(new_status.value)

        if expect_pending:
            guard = Application.status == ApplicationStatus.PENDING
        else:
            guard = Application.status != ApplicationStatus.PENDING

        try:
            with self._storage.transaction() as session:
                result = session.execute(
                    update(Application)
                    .where(Application.id == application_id, guard)
                    .values(status=new_status, updated_at=now)
                )
                if result.rowcount != 1:
                    raise _StatusChanged()

                session.add(ValidatorAction(
                    application_id=application_id,
                    validator_id=validator_id,
                    action=action,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                ))

                rejected = action is ReviewAction.REJECT
                session.execute(
                    update(User)
                    .where(User.id == application.user_id)
                    .values(
                        verification_status=user_status,
                        rejection_reason=notes if rejected else None,
                        rejection_date=now if rejected else None,
                        updated_at=now,
                    )
                )
        except _StatusChanged:
            if expect_pending:
                raise Conflict("Application is not pending")
            raise Conflict("Application is already pending")

        logger.info("validator %s applied %s to application %s", validator_id, action.value, application_id)
        return self.get(application_id)

    def apply_action(self, application_id: int, validator_id: int, action: ReviewAction,
                     notes: str | None = None) -> Application:
        """Approve, reject or request more info on a pending application."""
        if action is ReviewAction.REOPEN:
            raise ValueError("use reopen() to reopen an application")
        return self._transition(application_id, validator_id, action, notes, expect_pending=True)

    def reopen(self, application_id: int, validator_id: int) -> Application:
        """Send a resolved application back to pending and clear any rejection."""
        return self._transition(application_id, validator_id, ReviewAction.REOPEN, REOPEN_NOTE,
                                expect_pending=False)

    @staticmethod
    def can_use_community(user: User) -> bool:
        return user.verification_status is VerificationStatus.APPROVED
