"""MCP Server for git-backed configuration documents.

Provides load/save access to human-edited configuration documents whose
durable store is a remote git repository. Each save is committed, merged
with upstream and pushed; stale edits are refused by fingerprint.

Tools exposed:
- config_list: List document types in the repository
- config_load: Load a document and its fingerprint
- config_save: Save a document based on a fingerprint
- config_sync: Pull remote changes and reload JSON schemas
- config_history: Commits that touched a document
- config_revision: A document as it was at a past commit
- schema_list: List available JSON schemas
- schema_get: Get the JSON schema of a document type
- get_audit_log: Recent saves and syncs
"""
import asyncio
import json
import logging
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config import Settings
from .config_store import ConfigStore
from .errors import (
    ConfigStoreError,
    ConflictError,
    SyncConflictError,
    ValidationError,
)
from .git import RepositoryClient
from .schemas import ConfigValidator, SchemaStore
from .utils.audit_log import get_recent_changes, log_change, setup_audit_logging
from .utils.logging_config import setup_logging, timed_section, timed_section_sync
from .utils.retry import ensure_ready_with_retry

logger = logging.getLogger(__name__)

# Initialized on first use
settings: Optional[Settings] = None
config_store: Optional[ConfigStore] = None
validator: Optional[ConfigValidator] = None


def get_settings() -> Settings:
    """Get or load the settings."""
    global settings
    if settings is None:
        settings = Settings.load()
    return settings


def get_config_store() -> ConfigStore:
    """Get or create the config store, cloning or syncing the repository."""
    global config_store
    if config_store is None:
        s = get_settings()
        client = RepositoryClient(
            url=s.repository.url,
            local_path=s.repository.local_path,
            remote=s.repository.remote,
            branch=s.repository.branch,
            timeout=s.repository.timeout,
        )
        ensure_ready_with_retry(client, max_attempts=s.startup_retries)
        config_store = ConfigStore(
            client,
            config_path=s.paths.config,
            extension=s.paths.extension,
            email_domain=s.email_domain,
        )
    return config_store


def get_validator() -> ConfigValidator:
    """Get or create the schema validator."""
    global validator
    if validator is None:
        validator = ConfigValidator(SchemaStore(get_settings().schemas_dir))
        try:
            reload_schemas(get_config_store(), validator)
        except ConfigStoreError as e:
            logger.error(f"Could not load JSON schemas for server-side validation: {e}")
    return validator


def reload_schemas(store: ConfigStore, config_validator: ConfigValidator) -> list[str]:
    """Re-parse schemas while no sync can rewrite the working tree."""
    with store.client.lock, timed_section_sync("schema_reload", context=store.name):
        return config_validator.load_schemas()


def _text(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


def error_payload(action: str, doc_type: Optional[str], error: Exception) -> dict:
    """Translate a store failure into a tool result."""
    payload = {
        "action": action,
        "type": doc_type,
        "success": False,
        "error_type": type(error).__name__,
        "error": str(error),
    }
    if isinstance(error, ConflictError):
        payload["current_fingerprint"] = error.current
        payload["hint"] = "Concurrent modification, load the config again and retry"
    elif isinstance(error, SyncConflictError):
        payload["conflicts"] = error.conflicts
        payload["hint"] = "Conflicting remote edit, your change was discarded; load and retry"
    elif isinstance(error, ValidationError) and error.messages:
        payload["validation_errors"] = error.messages
    return payload


# Create MCP server
server = Server("configkeeper")


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="config_list",
            description="List configuration document types stored in the repository",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="config_load",
            description=(
                "Load a configuration document (syncs with the remote first). "
                "Returns the content and a fingerprint to pass to config_save"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Config type (file name without extension, e.g. 'network')"
                    }
                },
                "required": ["type"]
            }
        ),
        Tool(
            name="config_save",
            description=(
                "Save a configuration document. Fails if the document changed since "
                "the fingerprint was obtained. Commits, merges with the remote and pushes"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Config type"
                    },
                    "content": {
                        "type": "string",
                        "description": "Full document content"
                    },
                    "fingerprint": {
                        "type": "string",
                        "description": "Fingerprint from config_load (empty for a new document)",
                        "default": ""
                    },
                    "user": {
                        "type": "string",
                        "description": "Username recorded as commit author"
                    }
                },
                "required": ["type", "content"]
            }
        ),
        Tool(
            name="config_sync",
            description="Pull out-of-band changes from the remote repository and reload JSON schemas",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="config_history",
            description="Show commits that changed a configuration document",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Config type"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum commits to show",
                        "default": 20
                    }
                },
                "required": ["type"]
            }
        ),
        Tool(
            name="config_revision",
            description="Get a configuration document as it was at a commit from config_history",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Config type"
                    },
                    "revision": {
                        "type": "string",
                        "description": "Commit hash (or any git revision, e.g. HEAD~1)"
                    }
                },
                "required": ["type", "revision"]
            }
        ),
        Tool(
            name="schema_list",
            description="List config types that have a JSON schema",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="schema_get",
            description="Get the JSON schema for a config type",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Config type"
                    }
                },
                "required": ["type"]
            }
        ),
        Tool(
            name="get_audit_log",
            description="Show recent config saves and syncs from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Filter by config type"
                    },
                    "operation": {
                        "type": "string",
                        "description": "Filter by operation (save, sync)"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum records",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    doc_type = arguments.get("type", "N/A")

    async with timed_section(f"tool:{name}", context=doc_type):
        try:
            if name == "get_audit_log":
                return await handle_get_audit_log(
                    arguments.get("type"),
                    arguments.get("operation"),
                    arguments.get("limit", 20)
                )

            elif name == "schema_list":
                return await handle_schema_list(SchemaStore(get_settings().schemas_dir))

            elif name == "schema_get":
                return await handle_schema_get(
                    SchemaStore(get_settings().schemas_dir),
                    arguments["type"]
                )

            store = await asyncio.to_thread(get_config_store)

            if name == "config_list":
                return await handle_config_list(store)

            elif name == "config_load":
                return await handle_config_load(store, arguments["type"])

            elif name == "config_save":
                s = get_settings()
                return await handle_config_save(
                    store,
                    get_validator() if s.validate_on_save else None,
                    arguments["type"],
                    arguments["content"],
                    arguments.get("fingerprint", ""),
                    arguments.get("user")
                )

            elif name == "config_sync":
                return await handle_config_sync(store, get_validator())

            elif name == "config_history":
                return await handle_config_history(
                    store,
                    arguments["type"],
                    arguments.get("limit", 20)
                )

            elif name == "config_revision":
                return await handle_config_revision(
                    store,
                    arguments["type"],
                    arguments["revision"]
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_config_list(store: ConfigStore) -> list[TextContent]:
    """List document types."""
    types = await asyncio.to_thread(store.list_types)
    return _text({
        "action": "config_list",
        "count": len(types),
        "types": types,
    })


async def handle_config_load(store: ConfigStore, doc_type: str) -> list[TextContent]:
    """Load a document with its fingerprint."""
    logger.info(f"Loading {doc_type} config")
    try:
        doc = await asyncio.to_thread(store.load, doc_type)
    except ConfigStoreError as e:
        logger.warning(f"Could not load config {doc_type}: {e}")
        return _text(error_payload("config_load", doc_type, e))

    return _text({
        "action": "config_load",
        "type": doc_type,
        "success": True,
        "path": doc.path,
        "fingerprint": doc.fingerprint,
        "content": doc.content.decode("utf-8", errors="replace"),
    })


async def handle_config_save(
    store: ConfigStore,
    config_validator: Optional[ConfigValidator],
    doc_type: str,
    content: str,
    fingerprint: str = "",
    user: Optional[str] = None,
) -> list[TextContent]:
    """
    Validate and save a document.

    Validation runs only when a validator is given (validation.server).
    """
    fingerprint = (fingerprint or "").strip('"')
    logger.info(f"Saving {doc_type} config, base version {fingerprint or '(none)'}")
    content_bytes = content.encode("utf-8")

    try:
        if config_validator is not None:
            messages = config_validator.validate(doc_type, content_bytes)
            if messages:
                logger.warning(f"Validation errors for config of type {doc_type}: {messages}")
                raise ValidationError(
                    f"Validation failed for config of type {doc_type}", messages=messages
                )

        new_fingerprint = await asyncio.to_thread(
            store.save, doc_type, content_bytes, fingerprint, user
        )
    except ConfigStoreError as e:
        if isinstance(e, (ConflictError, SyncConflictError, ValidationError)):
            logger.warning(f"Save of config {doc_type} refused: {e}")
        else:
            logger.error(f"Could not save changes to config repository: {e}")
        log_change(
            doc_type, "save", success=False, user=user,
            base_fingerprint=fingerprint, error=str(e),
            details={"error_type": type(e).__name__},
        )
        return _text(error_payload("config_save", doc_type, e))

    log_change(
        doc_type, "save", success=True, user=user,
        base_fingerprint=fingerprint, new_fingerprint=new_fingerprint,
    )
    return _text({
        "action": "config_save",
        "type": doc_type,
        "success": True,
        "fingerprint": new_fingerprint,
        "changed": new_fingerprint != fingerprint,
    })


async def handle_config_sync(
    store: ConfigStore,
    config_validator: ConfigValidator,
) -> list[TextContent]:
    """
    Pull latest from the remote, then reload JSON schemas.

    Useful when changes reach the remote from other clients, e.g. developers
    pushing directly while operators edit through this server.
    """
    errors = []
    result = None

    logger.info("Pulling latest from config repo")
    try:
        result = await asyncio.to_thread(store.sync)
    except ConfigStoreError as e:
        logger.error(f"Problem pulling from config repo: {e}")
        errors.append({"stage": "pull", "error_type": type(e).__name__, "error": str(e)})

    logger.info("Reloading JSON schemas")
    schema_types: list[str] = []
    try:
        schema_types = await asyncio.to_thread(reload_schemas, store, config_validator)
    except ConfigStoreError as e:
        logger.error(f"Could not load JSON schemas for server-side validation: {e}")
        errors.append({"stage": "schemas", "error_type": type(e).__name__, "error": str(e)})

    log_change(
        "*", "sync", success=not errors,
        new_fingerprint=result.head if result else "",
        error="; ".join(e["error"] for e in errors) or None,
        details={
            "merged": result.merged if result else False,
            "conflicts": result.conflicts if result else [],
        },
    )

    return _text({
        "action": "config_sync",
        "success": not errors,
        "merged": result.merged if result else False,
        "remote_missing": result.remote_missing if result else False,
        "discarded_conflicts": result.conflicts if result else [],
        "head": result.head if result else "",
        "schemas": schema_types,
        "errors": errors,
    })


async def handle_config_history(
    store: ConfigStore,
    doc_type: str,
    limit: int,
) -> list[TextContent]:
    """Get version history for a document."""
    commits = await asyncio.to_thread(store.history, doc_type, limit)

    return _text({
        "action": "config_history",
        "type": doc_type,
        "commit_count": len(commits),
        "commits": [
            {
                "hash": c.hash,
                "short_hash": c.short_hash,
                "author": c.author,
                "email": c.email,
                "date": c.date.isoformat(),
                "message": c.message,
            }
            for c in commits
        ],
    })


async def handle_config_revision(
    store: ConfigStore,
    doc_type: str,
    revision: str,
) -> list[TextContent]:
    """Get a document at a past revision."""
    try:
        content = await asyncio.to_thread(store.load_at_revision, doc_type, revision)
    except ConfigStoreError as e:
        return _text(error_payload("config_revision", doc_type, e))

    return _text({
        "action": "config_revision",
        "type": doc_type,
        "success": True,
        "revision": revision,
        "content": content.decode("utf-8", errors="replace"),
    })


async def handle_schema_list(schema_store: SchemaStore) -> list[TextContent]:
    """List schema types."""
    types = schema_store.list_schema_types()
    return _text({
        "action": "schema_list",
        "count": len(types),
        "types": types,
    })


async def handle_schema_get(schema_store: SchemaStore, doc_type: str) -> list[TextContent]:
    """Return a JSON schema."""
    try:
        raw = schema_store.load_schema(doc_type)
    except (ConfigStoreError, ValueError) as e:
        return _text(error_payload("schema_get", doc_type, e))

    return [TextContent(type="text", text=raw.decode("utf-8"))]


async def handle_get_audit_log(
    doc_type: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 20,
    log_file: Optional[str] = None,
) -> list[TextContent]:
    """Get recent entries from the audit log."""
    records = get_recent_changes(
        log_file=log_file,
        doc_type=doc_type,
        operation=operation,
        limit=limit,
    )

    return _text({
        "total_records": len(records),
        "filters": {
            "type": doc_type,
            "operation": operation,
            "limit": limit,
        },
        "records": [
            {
                "timestamp": r.timestamp,
                "type": r.doc_type,
                "operation": r.operation,
                "user": r.user,
                "success": r.success,
                "base_fingerprint": r.base_fingerprint,
                "new_fingerprint": r.new_fingerprint,
                "error": r.error,
            }
            for r in records
        ],
    })


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    store = await asyncio.to_thread(get_config_store)
    types = await asyncio.to_thread(store.list_types)

    return [
        Resource(
            uri=AnyUrl(f"config://{doc_type}"),
            name=f"{doc_type} configuration",
            description=f"Configuration document {store.repo_path_for(doc_type)}",
            mimeType="application/yaml",
        )
        for doc_type in types
    ]


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: config://<type>
    uri_str = str(uri)
    if uri_str.startswith("config://"):
        doc_type = uri_str[len("config://"):].strip("/")
        store = await asyncio.to_thread(get_config_store)
        try:
            doc = await asyncio.to_thread(store.load, doc_type)
        except ConfigStoreError as e:
            return json.dumps(error_payload("read_resource", doc_type, e))
        return doc.content.decode("utf-8", errors="replace")

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_audit_logging()
    setup_logging()

    # Clone or sync before accepting requests
    get_config_store()
    get_validator()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
