"""Declarative base for the trade journal tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
