"""
Services package for the battle arena.

Long-lived infrastructure shared by the operations layer: database session
handling, the domain event bus, keyed locks, periodic tasks and the
external collaborators.
"""

from .base import BaseService

__all__ = ['BaseService']
