"""Kubeconfig parsing, assembly and serialization."""

import base64
import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kconfig.lib.errors import MissingBaseContextError

DEFAULT_KUBECONFIG = Path("~/.kube/config")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _named_entries(doc: dict[str, Any], section: str, body_key: str) -> dict[str, dict[str, Any]]:
    """Convert a kubeconfig list of {name, <body_key>} items into a name -> body map."""
    entries: dict[str, dict[str, Any]] = {}
    for item in doc.get(section) or []:
        if not isinstance(item, dict) or not item.get("name"):
            raise ValueError(f"kubeconfig {section} entry without a name: {item!r}")
        entries[str(item["name"])] = dict(item.get(body_key) or {})
    return entries


@dataclass
class ConnectionProfile:
    """In-memory kubeconfig: clusters, users (auth infos) and contexts keyed by name."""

    clusters: dict[str, dict[str, Any]] = field(default_factory=dict)
    auth_infos: dict[str, dict[str, Any]] = field(default_factory=dict)
    contexts: dict[str, dict[str, Any]] = field(default_factory=dict)
    current_context: str = ""

    @classmethod
    def from_dict(cls, doc: dict[str, Any] | None) -> "ConnectionProfile":
        """Build a profile from a parsed kubeconfig document."""
        doc = doc or {}
        return cls(
            clusters=_named_entries(doc, "clusters", "cluster"),
            auth_infos=_named_entries(doc, "users", "user"),
            contexts=_named_entries(doc, "contexts", "context"),
            current_context=str(doc.get("current-context") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "preferences": {},
            "clusters": [{"name": name, "cluster": body} for name, body in self.clusters.items()],
            "users": [{"name": name, "user": body} for name, body in self.auth_infos.items()],
            "contexts": [{"name": name, "context": body} for name, body in self.contexts.items()],
            "current-context": self.current_context,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def default_kubeconfig_path() -> Path:
    """Return the first $KUBECONFIG entry, or ~/.kube/config."""
    env_value = os.environ.get("KUBECONFIG", "")
    for candidate in env_value.split(os.pathsep):
        if candidate:
            return Path(candidate).expanduser()
    return DEFAULT_KUBECONFIG.expanduser()


def load_profile(path: Path) -> ConnectionProfile:
    """Read a kubeconfig file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a kubeconfig mapping
    """
    doc = yaml.safe_load(path.read_text())
    if doc is not None and not isinstance(doc, dict):
        raise ValueError(f"kubeconfig {path} is not a mapping")
    return ConnectionProfile.from_dict(doc)


def resolve_current_cluster(base: ConnectionProfile) -> str:
    """Return the cluster name referenced by the base profile's current context.

    Raises:
        MissingBaseContextError: If the context or its cluster cannot be resolved
    """
    if not base.current_context:
        raise MissingBaseContextError("base kubeconfig has no current-context")

    context = base.contexts.get(base.current_context)
    if context is None:
        raise MissingBaseContextError(
            f"current-context {base.current_context!r} not found in base kubeconfig"
        )

    cluster_name = context.get("cluster")
    if not cluster_name:
        raise MissingBaseContextError(f"context {base.current_context!r} has no cluster")
    if cluster_name not in base.clusters:
        raise MissingBaseContextError(
            f"cluster {cluster_name!r} referenced by context {base.current_context!r} "
            "not found in base kubeconfig"
        )
    return str(cluster_name)


def assemble_profile(
    base: ConnectionProfile,
    subject_name: str,
    certificate_pem: bytes,
    private_key_pem: bytes,
    namespace: str = "default",
) -> ConnectionProfile:
    """Build a standalone kubeconfig for the issued client certificate.

    The result holds only the base's current cluster, one user named
    ``subject_name`` with the key and certificate inlined, and a context
    ``<subject_name>@<cluster>`` selected as current. ``base`` is not modified.

    Args:
        base: Base kubeconfig providing the cluster entry
        subject_name: User name for the new credential
        certificate_pem: Issued client certificate
        private_key_pem: Matching private key
        namespace: Default namespace for the new context

    Returns:
        New ConnectionProfile

    Raises:
        MissingBaseContextError: If the base current context or cluster is missing
    """
    cluster_name = resolve_current_cluster(base)
    context_name = f"{subject_name}@{cluster_name}"

    return ConnectionProfile(
        clusters={cluster_name: copy.deepcopy(base.clusters[cluster_name])},
        auth_infos={
            subject_name: {
                "client-certificate-data": _b64(certificate_pem),
                "client-key-data": _b64(private_key_pem),
            }
        },
        contexts={
            context_name: {
                "cluster": cluster_name,
                "user": subject_name,
                "namespace": namespace,
            }
        },
        current_context=context_name,
    )
