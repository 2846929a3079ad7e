"""Tests for ToolRegistry: fixed tool set, validation at the boundary, dispatch."""

from fakes import ExplodingVault
from vaultproxy.errors import ToolErrorKind
from vaultproxy.tools.definitions import MUTATING_TOOLS
from vaultproxy.tools.executor import ToolExecutor


EXPECTED_TOOLS = {
    "list_mounts",
    "create_mount",
    "delete_mount",
    "list_secrets",
    "read_secret",
    "write_secret",
    "delete_secret",
    "enable_pki",
    "create_pki_issuer",
    "list_pki_issuers",
    "read_pki_issuer",
    "create_pki_role",
    "list_pki_roles",
    "read_pki_role",
    "delete_pki_role",
    "issue_pki_certificate",
}


class TestListTools:
    def test_lists_the_fixed_tool_set(self, registry) -> None:
        assert {t.name for t in registry.list_tools()} == EXPECTED_TOOLS

    def test_every_schema_is_an_object_with_required_list(self, registry) -> None:
        for tool in registry.list_tools():
            assert tool.input_schema["type"] == "object"
            assert isinstance(tool.input_schema["required"], list)
            assert set(tool.input_schema["required"]) <= set(tool.input_schema["properties"])

    def test_anthropic_format_has_name_description_schema(self, registry) -> None:
        rendered = registry.anthropic_tools()

        assert len(rendered) == len(EXPECTED_TOOLS)
        assert set(rendered[0]) == {"name", "description", "input_schema"}

    def test_read_only_tools_are_not_mutating(self) -> None:
        assert "list_mounts" not in MUTATING_TOOLS
        assert "read_secret" not in MUTATING_TOOLS
        assert {"write_secret", "delete_secret", "issue_pki_certificate"} <= MUTATING_TOOLS


class TestDispatch:
    def test_unknown_tool_returns_result_without_raising(self, registry, executor, vault_calls) -> None:
        result = registry.dispatch("drop_database", {}, executor)

        assert not result.success
        assert result.kind is ToolErrorKind.UNKNOWN_TOOL
        assert result.error == "Unknown tool: drop_database"
        assert vault_calls() == []

    def test_missing_required_argument_is_rejected_before_any_http_call(self, registry, executor, vault_calls) -> None:
        result = registry.dispatch("read_secret", {"mount": "secret"}, executor)

        assert not result.success
        assert result.kind is ToolErrorKind.INVALID_ARGUMENTS
        assert "path" in result.error
        assert vault_calls() == []

    def test_wrong_enum_value_is_rejected(self, registry, executor) -> None:
        result = registry.dispatch(
            "create_pki_issuer",
            {"mount": "pki", "issuer_name": "r", "type": "imported", "common_name": "x"},
            executor,
        )

        assert result.kind is ToolErrorKind.INVALID_ARGUMENTS

    def test_extra_arguments_are_ignored(self, registry, executor) -> None:
        result = registry.dispatch("list_mounts", {"verbose": True}, executor)

        # Fake store has no route, so the call reaches the store and 404s
        assert result.kind is ToolErrorKind.UPSTREAM_REJECTED

    def test_handler_exception_becomes_failed_result(self, registry) -> None:
        executor = ToolExecutor(ExplodingVault(KeyError("data")))

        result = registry.dispatch("read_secret", {"mount": "secret", "path": "app"}, executor)

        assert not result.success
        assert result.kind is ToolErrorKind.HANDLER_FAILED
        assert result.error.startswith("Failed to run read_secret: ")
