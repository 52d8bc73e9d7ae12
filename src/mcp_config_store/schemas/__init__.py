"""JSON Schemas for configuration documents and server-side validation."""

from .store import SchemaStore
from .validator import ConfigValidator

__all__ = ["SchemaStore", "ConfigValidator"]
