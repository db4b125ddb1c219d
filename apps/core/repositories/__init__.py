# apps/core/repositories/__init__.py
"""
Storage repositories.
"""

from .base import ClinicRepository
from .django_repository import DjangoClinicRepository
from .memory import InMemoryClinicRepository

__all__ = [
    'ClinicRepository',
    'DjangoClinicRepository',
    'InMemoryClinicRepository',
]
