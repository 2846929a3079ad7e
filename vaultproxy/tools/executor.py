from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from vaultproxy.errors import ToolErrorKind
from vaultproxy.tools.params import (
    CreateMountParams,
    CreatePkiIssuerParams,
    CreatePkiRoleParams,
    EnablePkiParams,
    IssueCertificateParams,
    ListSecretsParams,
    MountPathParams,
    NoParams,
    PkiIssuerRefParams,
    PkiMountParams,
    PkiRoleNameParams,
    SecretPathParams,
    WriteSecretParams,
)
from vaultproxy.vault.client import VaultClient, VaultResponse, normalize_path


@dataclass(frozen=True)
class ToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    kind: Optional[ToolErrorKind] = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: ToolErrorKind) -> "ToolResult":
        return cls(success=False, error=error, kind=kind)

    def payload(self) -> Any:
        """What the model and the client see for this result."""
        return self.data if self.success else {"error": self.error}


def _failed(action: str, res: VaultResponse) -> ToolResult:
    return ToolResult.fail(
        f"Failed to {action}: {res.error}",
        res.kind or ToolErrorKind.UPSTREAM_REJECTED,
    )


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _keys(res: VaultResponse) -> Dict[str, List[str]]:
    inner = _as_dict(_as_dict(res.data).get("data"))
    keys = inner.get("keys")
    return {"keys": list(keys) if isinstance(keys, list) else []}


class ToolExecutor:
    """
    One handler per tool. Handlers take validated params and return a ToolResult;
    they never raise for store or network failures.
    """

    def __init__(self, vault: VaultClient) -> None:
        self._vault = vault
        self._log = structlog.get_logger()

    # ---------------------------------------------------------
    # Mounts
    # ---------------------------------------------------------
    def list_mounts(self, _: NoParams) -> ToolResult:
        res = self._vault.request("GET", "sys/mounts")
        if not res.ok:
            return _failed("list mounts", res)

        body = res.data if isinstance(res.data, dict) else {}
        # Wrapped ({"data": {...}}) and legacy unwrapped responses both occur
        mounts_data = body.get("data") if isinstance(body.get("data"), dict) else body

        mounts = []
        for name, cfg in mounts_data.items():
            if not isinstance(cfg, dict):
                continue
            conf = cfg.get("config") if isinstance(cfg.get("config"), dict) else {}
            mounts.append(
                {
                    "name": name,
                    "type": cfg.get("type"),
                    "description": cfg.get("description") or "",
                    "default_lease_ttl": conf.get("default_lease_ttl") or 0,
                    "max_lease_ttl": conf.get("max_lease_ttl") or 0,
                }
            )
        return ToolResult.ok(mounts)

    def create_mount(self, p: CreateMountParams) -> ToolResult:
        path = normalize_path(p.path)
        body: Dict[str, Any] = {
            "type": p.type,
            "description": p.description or "",
            "config": p.config or {},
        }
        if p.type in ("kv-v2", "kv"):
            body["type"] = "kv"
            body["options"] = {"version": "2"}

        res = self._vault.request("POST", f"sys/mounts/{path}", body)
        if not res.ok:
            return _failed("create mount", res)
        return ToolResult.ok({"message": f"Mount '{path}' created successfully"})

    def delete_mount(self, p: MountPathParams) -> ToolResult:
        path = normalize_path(p.path)
        res = self._vault.request("DELETE", f"sys/mounts/{path}")
        if not res.ok:
            return _failed("delete mount", res)
        return ToolResult.ok({"message": f"Mount '{path}' deleted successfully"})

    # ---------------------------------------------------------
    # KV v2 secrets
    # ---------------------------------------------------------
    def list_secrets(self, p: ListSecretsParams) -> ToolResult:
        mount = normalize_path(p.mount)
        path = normalize_path(p.path) if p.path else ""
        full = f"{mount}/metadata/{path}" if path else f"{mount}/metadata"

        res = self._vault.request("LIST", full)
        if not res.ok:
            if res.status == 404:
                return ToolResult.ok({"keys": []})
            return _failed("list secrets", res)
        return ToolResult.ok(_keys(res))

    def read_secret(self, p: SecretPathParams) -> ToolResult:
        mount = normalize_path(p.mount)
        path = normalize_path(p.path)

        res = self._vault.request("GET", f"{mount}/data/{path}")
        if not res.ok:
            return _failed("read secret", res)

        inner = _as_dict(_as_dict(res.data).get("data"))
        return ToolResult.ok({"data": _as_dict(inner.get("data")), "metadata": inner.get("metadata")})

    def write_secret(self, p: WriteSecretParams) -> ToolResult:
        mount = normalize_path(p.mount)
        path = normalize_path(p.path)

        self._undelete_if_needed(mount, path)

        res = self._vault.request("POST", f"{mount}/data/{path}", {"data": p.data})
        if not res.ok:
            return _failed("write secret", res)
        return ToolResult.ok({"message": f"Secret written to '{mount}/{path}'"})

    def _undelete_if_needed(self, mount: str, path: str) -> None:
        """
        KV v2 refuses writes while the current version is soft-deleted.
        Best effort: any failure here just lets the write proceed.
        """
        meta = self._vault.request("GET", f"{mount}/metadata/{path}")
        if not meta.ok or not isinstance(meta.data, dict):
            return

        md = _as_dict(meta.data.get("data"))
        current = md.get("current_version")
        versions = md.get("versions")
        if not current or not isinstance(versions, dict):
            return

        version = _as_dict(versions.get(str(current)))
        if not version.get("deletion_time"):
            return

        res = self._vault.request("POST", f"{mount}/undelete/{path}", {"versions": [current]})
        if res.ok:
            self._log.info("tool.secret_undeleted", mount=mount, path=path, version=current)
        else:
            self._log.warning("tool.undelete_failed", mount=mount, path=path, reason=res.error)

    def delete_secret(self, p: SecretPathParams) -> ToolResult:
        mount = normalize_path(p.mount)
        path = normalize_path(p.path)

        res = self._vault.request("DELETE", f"{mount}/data/{path}")
        if not res.ok:
            return _failed("delete secret", res)
        return ToolResult.ok({"message": f"Secret '{mount}/{path}' deleted"})

    # ---------------------------------------------------------
    # PKI
    # ---------------------------------------------------------
    def enable_pki(self, p: EnablePkiParams) -> ToolResult:
        path = normalize_path(p.path)
        body = {
            "type": "pki",
            "description": p.description or "PKI secrets engine",
            "config": p.config.model_dump(exclude_none=True) if p.config else {},
        }
        res = self._vault.request("POST", f"sys/mounts/{path}", body)
        if not res.ok:
            return _failed("enable PKI", res)
        return ToolResult.ok({"message": f"PKI enabled at '{path}'"})

    def create_pki_issuer(self, p: CreatePkiIssuerParams) -> ToolResult:
        mount = normalize_path(p.mount)
        body = {
            "common_name": p.common_name,
            "issuer_name": p.issuer_name,
            "ttl": p.ttl or "87600h",
            "key_type": p.key_type or "rsa",
            "key_bits": p.key_bits or 2048,
        }
        res = self._vault.request("POST", f"{mount}/root/generate/{p.type}", body)
        if not res.ok:
            return _failed("create PKI issuer", res)
        return ToolResult.ok(res.data)

    def list_pki_issuers(self, p: PkiMountParams) -> ToolResult:
        mount = normalize_path(p.mount)
        res = self._vault.request("LIST", f"{mount}/issuers")
        if not res.ok:
            if res.status == 404:
                return ToolResult.ok({"keys": []})
            return _failed("list PKI issuers", res)
        return ToolResult.ok(_keys(res))

    def read_pki_issuer(self, p: PkiIssuerRefParams) -> ToolResult:
        mount = normalize_path(p.mount)
        res = self._vault.request("GET", f"{mount}/issuer/{p.issuer_ref}")
        if not res.ok:
            return _failed("read PKI issuer", res)
        return ToolResult.ok(res.data)

    def create_pki_role(self, p: CreatePkiRoleParams) -> ToolResult:
        mount = normalize_path(p.mount)
        body = {
            "allowed_domains": p.allowed_domains,
            "allow_subdomains": True if p.allow_subdomains is None else p.allow_subdomains,
            "max_ttl": p.max_ttl or "72h",
            "ttl": p.ttl or "24h",
        }
        res = self._vault.request("POST", f"{mount}/roles/{p.name}", body)
        if not res.ok:
            return _failed("create PKI role", res)
        return ToolResult.ok({"message": f"PKI role '{p.name}' created"})

    def list_pki_roles(self, p: PkiMountParams) -> ToolResult:
        mount = normalize_path(p.mount)
        res = self._vault.request("LIST", f"{mount}/roles")
        if not res.ok:
            if res.status == 404:
                return ToolResult.ok({"keys": []})
            return _failed("list PKI roles", res)
        return ToolResult.ok(_keys(res))

    def read_pki_role(self, p: PkiRoleNameParams) -> ToolResult:
        mount = normalize_path(p.mount)
        res = self._vault.request("GET", f"{mount}/roles/{p.name}")
        if not res.ok:
            return _failed("read PKI role", res)
        return ToolResult.ok(res.data)

    def delete_pki_role(self, p: PkiRoleNameParams) -> ToolResult:
        mount = normalize_path(p.mount)
        res = self._vault.request("DELETE", f"{mount}/roles/{p.name}")
        if not res.ok:
            return _failed("delete PKI role", res)
        return ToolResult.ok({"message": f"PKI role '{p.name}' deleted"})

    def issue_pki_certificate(self, p: IssueCertificateParams) -> ToolResult:
        mount = normalize_path(p.mount)
        body: Dict[str, Any] = {"common_name": p.common_name}
        if p.ttl:
            body["ttl"] = p.ttl
        if p.alt_names:
            body["alt_names"] = ",".join(p.alt_names)

        res = self._vault.request("POST", f"{mount}/issue/{p.role}", body)
        if not res.ok:
            return _failed("issue certificate", res)
        return ToolResult.ok(res.data)
