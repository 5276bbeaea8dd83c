"""
Base controller class.
Controllers sit between the HTTP endpoints and the services and return Pydantic schemas.
"""

from abc import ABC


class BaseController(ABC):
    """Base controller class for all controllers."""
    pass
