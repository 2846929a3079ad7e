from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]
    # True for tools that change state in the store
    mutating: bool = False


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _str(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


_MOUNT_CONFIG = {
    "type": "object",
    "description": "Mount configuration options",
    "properties": {
        "default_lease_ttl": {"type": "string"},
        "max_lease_ttl": {"type": "string"},
    },
}

VAULT_TOOLS: Tuple[ToolDefinition, ...] = (
    # ---- mounts ----
    ToolDefinition(
        name="list_mounts",
        description="List all mounted secrets engines in Vault",
        input_schema=_schema({}, []),
    ),
    ToolDefinition(
        name="create_mount",
        description="Create a new secrets engine mount",
        input_schema=_schema(
            {
                "path": _str('Mount path (e.g., "secret", "kv")'),
                "type": _str('Secrets engine type (e.g., "kv-v2", "pki")'),
                "description": _str("Human-readable description"),
                "config": _MOUNT_CONFIG,
            },
            ["path", "type"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="delete_mount",
        description="Delete a secrets engine mount",
        input_schema=_schema({"path": _str("Mount path to delete")}, ["path"]),
        mutating=True,
    ),
    # ---- kv secrets ----
    ToolDefinition(
        name="list_secrets",
        description="List secrets at a path within a KV secrets engine",
        input_schema=_schema(
            {
                "mount": _str('KV mount path (e.g., "secret")'),
                "path": _str('Path within the mount (e.g., "myapp/config")'),
            },
            ["mount"],
        ),
    ),
    ToolDefinition(
        name="read_secret",
        description="Read a secret from a KV secrets engine",
        input_schema=_schema(
            {"mount": _str("KV mount path"), "path": _str("Secret path within the mount")},
            ["mount", "path"],
        ),
    ),
    ToolDefinition(
        name="write_secret",
        description="Write a secret to a KV secrets engine",
        input_schema=_schema(
            {
                "mount": _str("KV mount path"),
                "path": _str("Secret path within the mount"),
                "data": {
                    "type": "object",
                    "description": "Secret data as key-value pairs",
                    "additionalProperties": True,
                },
            },
            ["mount", "path", "data"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="delete_secret",
        description="Delete a secret from a KV secrets engine",
        input_schema=_schema(
            {"mount": _str("KV mount path"), "path": _str("Secret path to delete")},
            ["mount", "path"],
        ),
        mutating=True,
    ),
    # ---- pki ----
    ToolDefinition(
        name="enable_pki",
        description="Enable a PKI secrets engine",
        input_schema=_schema(
            {
                "path": _str("Mount path for PKI engine"),
                "description": _str("Human-readable description"),
                "config": {
                    "type": "object",
                    "properties": {"max_lease_ttl": _str("Maximum TTL for certificates")},
                },
            },
            ["path"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="create_pki_issuer",
        description="Create a PKI issuer (root or intermediate CA)",
        input_schema=_schema(
            {
                "mount": _str("PKI mount path"),
                "issuer_name": _str("Name for the issuer"),
                "type": {"type": "string", "enum": ["internal", "exported"], "description": "Key type"},
                "common_name": _str("Common name for the CA"),
                "ttl": _str("TTL for the CA certificate"),
                "key_type": {"type": "string", "enum": ["rsa", "ec", "ed25519"], "description": "Key algorithm"},
                "key_bits": {"type": "number", "description": "Key size in bits"},
            },
            ["mount", "issuer_name", "type", "common_name"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="list_pki_issuers",
        description="List PKI issuers",
        input_schema=_schema({"mount": _str("PKI mount path")}, ["mount"]),
    ),
    ToolDefinition(
        name="read_pki_issuer",
        description="Read a PKI issuer",
        input_schema=_schema(
            {"mount": _str("PKI mount path"), "issuer_ref": _str("Issuer name or ID")},
            ["mount", "issuer_ref"],
        ),
    ),
    ToolDefinition(
        name="create_pki_role",
        description="Create a PKI role for issuing certificates",
        input_schema=_schema(
            {
                "mount": _str("PKI mount path"),
                "name": _str("Role name"),
                "allowed_domains": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Allowed domains for certificates",
                },
                "allow_subdomains": {"type": "boolean", "description": "Allow subdomains"},
                "max_ttl": _str("Maximum TTL for issued certificates"),
                "ttl": _str("Default TTL for issued certificates"),
            },
            ["mount", "name", "allowed_domains"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="list_pki_roles",
        description="List PKI roles",
        input_schema=_schema({"mount": _str("PKI mount path")}, ["mount"]),
    ),
    ToolDefinition(
        name="read_pki_role",
        description="Read a PKI role configuration",
        input_schema=_schema(
            {"mount": _str("PKI mount path"), "name": _str("Role name")},
            ["mount", "name"],
        ),
    ),
    ToolDefinition(
        name="delete_pki_role",
        description="Delete a PKI role",
        input_schema=_schema(
            {"mount": _str("PKI mount path"), "name": _str("Role name to delete")},
            ["mount", "name"],
        ),
        mutating=True,
    ),
    ToolDefinition(
        name="issue_pki_certificate",
        description="Issue a certificate from a PKI role",
        input_schema=_schema(
            {
                "mount": _str("PKI mount path"),
                "role": _str("Role name to use"),
                "common_name": _str("Common name for the certificate"),
                "ttl": _str("TTL for the certificate"),
                "alt_names": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Subject alternative names",
                },
            },
            ["mount", "role", "common_name"],
        ),
        mutating=True,
    ),
)

MUTATING_TOOLS = frozenset(t.name for t in VAULT_TOOLS if t.mutating)
