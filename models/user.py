from enum import Enum
from typing import assert_never

from sqlalchemy import Column, String, DateTime, Text, Index
from sqlalchemy.types import Enum as SAEnum

from models.base_model import Base, BaseModel


class Role(str, Enum):
    ADMIN = "admin"
    VALIDATOR = "validator"
    CITIZEN = "citizen"

    @property
    def is_admin(self) -> bool:
        match self:
            case Role.ADMIN:
                return True
            case Role.VALIDATOR | Role.CITIZEN:
                return False
            case _:
                assert_never(self)

    @property
    def can_validate(self) -> bool:
        """Validators and admins may review identity-verification applications."""
        match self:
            case Role.ADMIN | Role.VALIDATOR:
                return True
            case Role.CITIZEN:
                return False
            case _:
                assert_never(self)


class VerificationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_INFO = "needs_info"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(BaseModel, Base):
    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        SAEnum(Role, name="user_role", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=Role.CITIZEN,
    )
    verification_status = Column(
        SAEnum(VerificationStatus, name="verification_status", native_enum=False,
               values_callable=_enum_values),
        nullable=False,
        default=VerificationStatus.NONE,
    )
    rejection_reason = Column(Text, nullable=True)
    rejection_date = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_users_role", "role"),
        Index("ix_users_verification_status", "verification_status"),
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def __repr__(self):
        return f"<User {self.id} {self.email} role={self.role.value}>"
