"""Reads JSON Schemas as bytes from the schemas directory of the working copy."""
import logging
from pathlib import Path

from ..errors import NotFoundError

logger = logging.getLogger(__name__)


class SchemaStore:
    """JSON Schemas stored as ``<schemas_dir>/<type>.json``."""

    def __init__(self, schemas_dir: Path):
        self.schemas_dir = Path(schemas_dir)

    def load_schema(self, schema_type: str) -> bytes:
        """
        Read the JSON Schema for a document type.

        Args:
            schema_type: Schema file name without the ``.json`` suffix

        Raises:
            ValueError: If schema_type is empty
            NotFoundError: If there is no such schema
        """
        if not schema_type:
            raise ValueError("schema type cannot be empty")

        path = self.schemas_dir / f"{schema_type}.json"
        if not path.is_file():
            raise NotFoundError(f"Schema for type {schema_type} not found on path {path}")
        return path.read_bytes()

    def list_schema_types(self) -> list[str]:
        """Names of the available schemas, sorted alphabetically."""
        if not self.schemas_dir.is_dir():
            logger.debug(f"No schemas directory at {self.schemas_dir}")
            return []
        return sorted(p.stem for p in self.schemas_dir.glob("*.json") if p.is_file())
