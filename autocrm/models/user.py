"""
User profiles. Support agents, admins and customers share one table.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase

USER_ROLES = ("admin", "agent", "customer")


class User(RecordBase):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String, nullable=True)
    user_role: Mapped[str] = mapped_column(String, nullable=False, default="agent")  # admin, agent, customer
    avatar_url: Mapped[str] = mapped_column(String, nullable=True)
