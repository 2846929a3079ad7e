"""Typed argument models, one per tool. Extra keys from the model are ignored."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class NoParams(ToolParams):
    pass


class MountConfig(ToolParams):
    default_lease_ttl: Optional[str] = None
    max_lease_ttl: Optional[str] = None


class CreateMountParams(ToolParams):
    path: str = Field(min_length=1)
    type: str = Field(min_length=1)
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class MountPathParams(ToolParams):
    path: str = Field(min_length=1)


class ListSecretsParams(ToolParams):
    mount: str = Field(min_length=1)
    path: Optional[str] = None


class SecretPathParams(ToolParams):
    mount: str = Field(min_length=1)
    path: str = Field(min_length=1)


class WriteSecretParams(SecretPathParams):
    data: Dict[str, Any]


class EnablePkiParams(ToolParams):
    path: str = Field(min_length=1)
    description: Optional[str] = None
    config: Optional[MountConfig] = None


class CreatePkiIssuerParams(ToolParams):
    mount: str = Field(min_length=1)
    issuer_name: str = Field(min_length=1)
    type: Literal["internal", "exported"]
    common_name: str = Field(min_length=1)
    ttl: Optional[str] = None
    key_type: Optional[Literal["rsa", "ec", "ed25519"]] = None
    key_bits: Optional[int] = None


class PkiMountParams(ToolParams):
    mount: str = Field(min_length=1)


class PkiIssuerRefParams(PkiMountParams):
    issuer_ref: str = Field(min_length=1)


class PkiRoleNameParams(PkiMountParams):
    name: str = Field(min_length=1)


class CreatePkiRoleParams(PkiRoleNameParams):
    allowed_domains: List[str]
    allow_subdomains: Optional[bool] = None
    max_ttl: Optional[str] = None
    ttl: Optional[str] = None


class IssueCertificateParams(PkiMountParams):
    role: str = Field(min_length=1)
    common_name: str = Field(min_length=1)
    ttl: Optional[str] = None
    alt_names: Optional[List[str]] = None
