"""
ValidatorAction model: append-only audit trail of validator decisions.
Rows are inserted in the same transaction as the status change they record and
are never updated afterwards.
"""
from enum import Enum
from typing import assert_never

from sqlalchemy import Column, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import BaseModel, Base
from models.application import ApplicationStatus


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_INFO = "request_info"
    REOPEN = "reopen"

    @property
    def resulting_status(self) -> ApplicationStatus:
        match self:
            case ReviewAction.APPROVE:
                return ApplicationStatus.APPROVED
            case ReviewAction.REJECT:
                return ApplicationStatus.REJECTED
            case ReviewAction.REQUEST_INFO:
                return ApplicationStatus.NEEDS_INFO
            case ReviewAction.REOPEN:
                return ApplicationStatus.PENDING
            case _:
                assert_never(self)


class ValidatorAction(BaseModel, Base):
    __tablename__ = "validator_actions"

    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    validator_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(
        SAEnum(ReviewAction, name="review_action", native_enum=False,
               values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    application = relationship("Application", back_populates="actions")

    __table_args__ = (
        Index("ix_validator_actions_application_id", "application_id"),
    )

    def __repr__(self):
        return f"<ValidatorAction {self.id} app={self.application_id} action={self.action.value}>"
