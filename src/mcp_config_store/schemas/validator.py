"""Server-side validation of configuration documents against JSON Schemas."""
import json
import logging
import threading

import yaml
from jsonschema import Draft4Validator
from jsonschema.exceptions import SchemaError

from ..errors import ValidationError
from .store import SchemaStore

logger = logging.getLogger(__name__)


class ConfigValidator:
    """
    Validates YAML documents against the JSON Schema of their type.

    Schemas are parsed once by load_schemas() and cached per type. Draft 4
    matches what the form editors in front of the store understand. Call
    load_schemas() again after a sync to pick up schema changes.
    """

    def __init__(self, schema_store: SchemaStore):
        self.schema_store = schema_store
        self._validators: dict[str, Draft4Validator] = {}
        self._lock = threading.Lock()

    def load_schemas(self) -> list[str]:
        """
        Parse every available schema, replacing the cache.

        Returns:
            Types with a loaded schema

        Raises:
            ValidationError: If a schema is not valid JSON or not a valid schema
        """
        validators = {}
        for schema_type in self.schema_store.list_schema_types():
            validators[schema_type] = self._load_validator(schema_type)

        with self._lock:
            self._validators = validators

        logger.info(f"Loaded {len(validators)} JSON schemas: {sorted(validators)}")
        return sorted(validators)

    def _load_validator(self, schema_type: str) -> Draft4Validator:
        raw = self.schema_store.load_schema(schema_type)
        try:
            schema = json.loads(raw)
            Draft4Validator.check_schema(schema)
        except (ValueError, SchemaError) as e:
            raise ValidationError(f"Invalid JSON schema for type {schema_type}: {e}") from e
        return Draft4Validator(schema)

    def validate(self, doc_type: str, content: bytes) -> list[str]:
        """
        Validate a YAML document against the schema for its type.

        Returns:
            Sorted validation messages; empty if valid or if the type has
            no schema

        Raises:
            ValidationError: If the document is not parseable YAML
        """
        with self._lock:
            validator = self._validators.get(doc_type)
        if validator is None:
            logger.debug(f"No schema for config type {doc_type}, skipping validation")
            return []

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValidationError(f"Could not parse config of type {doc_type}: {e}") from e

        messages = []
        for error in validator.iter_errors(data):
            path = ".".join(str(p) for p in error.path) if error.path else "root"
            messages.append(f"{path}: {error.message}")
        return sorted(messages)
