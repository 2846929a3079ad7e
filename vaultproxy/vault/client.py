from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import structlog

from vaultproxy.errors import ToolErrorKind, UpstreamToolError
from vaultproxy.vault.pool import SessionPool


@dataclass(frozen=True)
class VaultContext:
    """Per-request credentials; the token is passed through untouched."""

    vault_addr: str
    vault_token: str


@dataclass
class VaultResponse:
    ok: bool
    status: int
    data: Any = None
    error: Optional[str] = None
    kind: Optional[ToolErrorKind] = None


def normalize_path(path: str) -> str:
    """Remove trailing slashes from a mount or secret path."""
    return (path or "").rstrip("/")


class VaultClient:
    """
    Thin REST client over the store's /v1 API.

    Never raises for HTTP or transport failures; every call returns a VaultResponse.
    A transport failure marks the pooled session dead.
    """

    def __init__(self, pool: SessionPool, ctx: VaultContext, timeout_s: float = 30.0) -> None:
        self._pool = pool
        self._ctx = ctx
        self._timeout_s = timeout_s
        self._log = structlog.get_logger()

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> VaultResponse:
        url = f"{self._ctx.vault_addr}/v1/{path}"
        session = self._pool.get_or_create(self._ctx.vault_addr, self._ctx.vault_token)

        try:
            r = session.request(
                method,
                url,
                headers={
                    "X-Vault-Token": self._ctx.vault_token,
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=self._timeout_s,
            )
        except requests.RequestException as ex:
            self._pool.invalidate(self._ctx.vault_addr, self._ctx.vault_token, session)
            self._log.warning("vault.request_failed", method=method, path=path, reason=str(ex))
            return VaultResponse(ok=False, status=0, error=str(ex), kind=ToolErrorKind.NETWORK_FAILURE)

        text = r.text or ""
        try:
            data: Any = json.loads(text) if text else {}
        except ValueError:
            data = {"raw": text}

        if not r.ok:
            errors = data.get("errors") if isinstance(data, dict) else None
            err = UpstreamToolError(r.status_code, [str(e) for e in (errors or [])])
            self._log.info("vault.request_rejected", method=method, path=path, status=r.status_code)
            return VaultResponse(
                ok=False,
                status=r.status_code,
                data=data,
                error=str(err),
                kind=ToolErrorKind.UPSTREAM_REJECTED,
            )

        return VaultResponse(ok=True, status=r.status_code, data=data)
