from enum import Enum

from sqlalchemy import Column, String, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import BaseModel, Base


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_INFO = "needs_info"


class Application(BaseModel, Base):
    """A citizen's identity-verification application, reviewed by validators."""

    __tablename__ = "applications"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    full_name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=False)
    phone = Column(String(32), nullable=False)
    dob = Column(String(10), nullable=False)
    # Uploaded images are data URIs or URLs; stored as-is
    id_card_front = Column(Text, nullable=True)
    id_card_back = Column(Text, nullable=True)
    selfie_image = Column(Text, nullable=True)
    ai_analysis_json = Column(Text, nullable=True)
    status = Column(
        SAEnum(ApplicationStatus, name="application_status", native_enum=False,
               values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )

    user = relationship("User", lazy="joined")
    actions = relationship(
        "ValidatorAction",
        back_populates="application",
        order_by="ValidatorAction.id",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_applications_user_id", "user_id"),
        Index("ix_applications_status", "status"),
    )

    def __repr__(self):
        return f"<Application {self.id} user={self.user_id} status={self.status.value}>"
