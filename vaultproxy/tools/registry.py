from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Tuple, Type

import structlog
from pydantic import ValidationError

from vaultproxy.errors import ToolErrorKind
from vaultproxy.tools.definitions import VAULT_TOOLS, ToolDefinition
from vaultproxy.tools.executor import ToolExecutor, ToolResult
from vaultproxy.tools import params as P

Handler = Callable[[ToolExecutor, P.ToolParams], ToolResult]

# tool name -> (argument model, handler)
_BINDINGS: Dict[str, Tuple[Type[P.ToolParams], Handler]] = {
    "list_mounts": (P.NoParams, ToolExecutor.list_mounts),
    "create_mount": (P.CreateMountParams, ToolExecutor.create_mount),
    "delete_mount": (P.MountPathParams, ToolExecutor.delete_mount),
    "list_secrets": (P.ListSecretsParams, ToolExecutor.list_secrets),
    "read_secret": (P.SecretPathParams, ToolExecutor.read_secret),
    "write_secret": (P.WriteSecretParams, ToolExecutor.write_secret),
    "delete_secret": (P.SecretPathParams, ToolExecutor.delete_secret),
    "enable_pki": (P.EnablePkiParams, ToolExecutor.enable_pki),
    "create_pki_issuer": (P.CreatePkiIssuerParams, ToolExecutor.create_pki_issuer),
    "list_pki_issuers": (P.PkiMountParams, ToolExecutor.list_pki_issuers),
    "read_pki_issuer": (P.PkiIssuerRefParams, ToolExecutor.read_pki_issuer),
    "create_pki_role": (P.CreatePkiRoleParams, ToolExecutor.create_pki_role),
    "list_pki_roles": (P.PkiMountParams, ToolExecutor.list_pki_roles),
    "read_pki_role": (P.PkiRoleNameParams, ToolExecutor.read_pki_role),
    "delete_pki_role": (P.PkiRoleNameParams, ToolExecutor.delete_pki_role),
    "issue_pki_certificate": (P.IssueCertificateParams, ToolExecutor.issue_pki_certificate),
}


def _format_validation_error(ex: ValidationError) -> str:
    parts = []
    for err in ex.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolRegistry:
    """Read-only table of tool definitions and their handlers."""

    def __init__(self, tools: Tuple[ToolDefinition, ...] = VAULT_TOOLS) -> None:
        missing = [t.name for t in tools if t.name not in _BINDINGS]
        if missing:
            raise ValueError(f"No handler bound for tools: {', '.join(missing)}")
        self._tools = tools
        self._by_name = {t.name: t for t in tools}
        self._log = structlog.get_logger()

    def list_tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._by_name.get(name)

    def is_mutating(self, name: str) -> bool:
        tool = self._by_name.get(name)
        return bool(tool and tool.mutating)

    def anthropic_tools(self) -> List[Dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.input_schema}
            for t in self._tools
        ]

    def dispatch(self, name: str, args: Mapping[str, Any], executor: ToolExecutor) -> ToolResult:
        """Validate args against the tool's model and run its handler. Never raises."""
        if name not in self._by_name:
            self._log.warning("tool.unknown", tool=name)
            return ToolResult.fail(f"Unknown tool: {name}", ToolErrorKind.UNKNOWN_TOOL)

        model, handler = _BINDINGS[name]
        try:
            params = model.model_validate(dict(args or {}))
        except ValidationError as ex:
            self._log.info("tool.invalid_arguments", tool=name, errors=ex.error_count())
            return ToolResult.fail(
                f"Invalid arguments for {name}: {_format_validation_error(ex)}",
                ToolErrorKind.INVALID_ARGUMENTS,
            )

        try:
            result = handler(executor, params)
        except Exception as ex:
            # The round continues; the model sees this like any other tool error
            self._log.exception("tool.handler_failed", tool=name)
            return ToolResult.fail(f"Failed to run {name}: {ex}", ToolErrorKind.HANDLER_FAILED)

        self._log.info(
            "tool.executed",
            tool=name,
            success=result.success,
            kind=result.kind.value if result.kind else None,
        )
        return result
