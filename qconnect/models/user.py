from sqlalchemy import Column, String, Enum
from sqlalchemy.orm import relationship

import qconnect.models as models
from qconnect.models.base_model import Base, BaseModel
from qconnect.models.enums import Role


class User(BaseModel, Base):
    __tablename__ = "users"
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="user_role", native_enum=False), nullable=False, default=Role.patient)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @classmethod
    def find_by_email(cls, email: str):
        if not email:
            return None
        session = models.storage.get_session()
        return session.query(cls).filter(cls.email == email.strip().lower()).first()

    @classmethod
    def find_by_id(cls, user_id: str):
        if not user_id:
            return None
        return models.storage.get(cls, user_id)

    def __repr__(self):
        return f"<User {self.email} role={self.role.value if self.role else None}>"
