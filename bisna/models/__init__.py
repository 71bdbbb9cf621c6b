"""
This package contains the declarative base for entities managed by Bisna.
"""

from bisna.models.base import Base

__all__ = ['Base']
