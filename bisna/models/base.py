"""
Base model configuration for SQLAlchemy ORM.

Entities managed by Bisna are plain SQLAlchemy mapped classes. They may
inherit from this ``Base`` or from any other declarative base. An entity can
name a custom repository by setting ``__repository_class__`` to a subclass of
``bisna.repositories.base.Repository``.

Usage:
    from bisna.models.base import Base

    class User(Base):
        __tablename__ = "users"
        __repository_class__ = UserRepository

        id = Column(Integer, primary_key=True)
        name = Column(String)
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
