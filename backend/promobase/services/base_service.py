"""
Base service class.
Services hold the contact logic and coordinate the store and its backends.
"""

from abc import ABC


class BaseService(ABC):
    """Base service class for all services."""
    pass
