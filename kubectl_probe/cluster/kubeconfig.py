"""Discover API server credentials from a kubeconfig or the pod's service account."""

import asyncio
import base64
import json
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import SecretStr

from kubectl_probe.cluster.config import ClusterConfig

log = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"
SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class KubeconfigError(Exception):
    """Raised when no usable cluster credentials can be found."""


async def load_cluster_config(
    kubeconfig: Path | None = None,
    context: str | None = None,
) -> ClusterConfig:
    """Load cluster credentials with the same precedence as kubectl.

    An explicit path wins, then the first entry of ``$KUBECONFIG``, then
    ``~/.kube/config``. Without any kubeconfig the in-cluster service account
    is used.

    Raises:
        KubeconfigError: If no configuration is usable

    """
    path = kubeconfig or _default_kubeconfig_path()
    if path is not None and path.is_file():
        log.debug("Loading kubeconfig from %s", path)
        return _check_tls(await load_kubeconfig(path, context), path)

    if kubeconfig is not None:
        raise KubeconfigError(f"Kubeconfig not found: {kubeconfig}")

    if "KUBERNETES_SERVICE_HOST" in os.environ:
        log.debug("No kubeconfig found, using in-cluster service account")
        return _check_tls(load_in_cluster_config(), SERVICE_ACCOUNT_DIR)

    raise KubeconfigError(
        "No kubeconfig found and not running inside a cluster; "
        "pass --kubeconfig or set KUBECONFIG"
    )


def _check_tls(config: ClusterConfig, source: Path) -> ClusterConfig:
    # Reads every certificate and key the configuration names.
    try:
        config.ssl_context()
    except (OSError, ValueError) as e:
        raise KubeconfigError(f"Invalid TLS settings in {source}: {e}") from e
    return config


def _default_kubeconfig_path() -> Path | None:
    if env := os.environ.get("KUBECONFIG"):
        first = next((p for p in env.split(os.pathsep) if p), None)
        return Path(first).expanduser() if first else None
    return DEFAULT_KUBECONFIG


def load_in_cluster_config(
    service_account_dir: Path = SERVICE_ACCOUNT_DIR,
) -> ClusterConfig:
    """Build a configuration from the mounted service account."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    if not host:
        raise KubeconfigError("KUBERNETES_SERVICE_HOST is not set")

    token_path = service_account_dir / "token"
    if not token_path.is_file():
        raise KubeconfigError(f"Service account token not found: {token_path}")

    if ":" in host:
        host = f"[{host}]"

    namespace_path = service_account_dir / "namespace"
    ca_path = service_account_dir / "ca.crt"
    return ClusterConfig(
        server=f"https://{host}:{port}",
        token=SecretStr(token_path.read_text().strip()),
        certificate_authority=ca_path if ca_path.is_file() else None,
        namespace=(
            namespace_path.read_text().strip()
            if namespace_path.is_file()
            else "default"
        ),
    )


async def load_kubeconfig(path: Path, context: str | None = None) -> ClusterConfig:
    """Build a configuration from one kubeconfig file."""
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise KubeconfigError(f"Invalid YAML in kubeconfig {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise KubeconfigError(f"Kubeconfig is empty or malformed: {path}")

    context_name = context or data.get("current-context")
    if not context_name:
        raise KubeconfigError(f"No context selected in kubeconfig {path}")

    ctx = _named(data, "contexts", "context", context_name)
    cluster = _named(data, "clusters", "cluster", ctx.get("cluster", ""))
    user = _named(data, "users", "user", ctx["user"]) if ctx.get("user") else {}
    base_dir = path.parent

    token = user.get("token")
    if token_file := user.get("tokenFile"):
        token = _resolve(base_dir, token_file).read_text().strip()
    elif exec_config := user.get("exec"):
        token = await run_exec_plugin(exec_config)
    elif "auth-provider" in user:
        raise KubeconfigError("auth-provider credentials are not supported")

    if "server" not in cluster:
        raise KubeconfigError(f"Cluster for context '{context_name}' has no server")

    return ClusterConfig(
        server=cluster["server"],
        token=SecretStr(token) if token else None,
        certificate_authority=_optional_path(
            base_dir, cluster.get("certificate-authority")
        ),
        certificate_authority_data=_decode(cluster.get("certificate-authority-data")),
        client_certificate=_optional_path(base_dir, user.get("client-certificate")),
        client_certificate_data=_decode(user.get("client-certificate-data")),
        client_key=_optional_path(base_dir, user.get("client-key")),
        client_key_data=(
            SecretStr(key) if (key := _decode(user.get("client-key-data"))) else None
        ),
        insecure_skip_tls_verify=bool(cluster.get("insecure-skip-tls-verify", False)),
        namespace=ctx.get("namespace") or "default",
    )


async def run_exec_plugin(exec_config: Mapping[str, Any]) -> str:
    """Run a client-go credential plugin and return the token it prints."""
    command = exec_config.get("command")
    if not command:
        raise KubeconfigError("exec credential plugin has no command")

    args: Sequence[str] = exec_config.get("args") or []
    env = dict(os.environ)
    for item in exec_config.get("env") or []:
        env[item["name"]] = item["value"]

    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        raise KubeconfigError(
            f"exec credential plugin {command} failed: {stderr.decode().strip()}"
        )

    try:
        credential = json.loads(stdout)
        return str(credential["status"]["token"])
    except (ValueError, KeyError, TypeError) as e:
        raise KubeconfigError(
            f"exec credential plugin {command} returned no token"
        ) from e


def _named(
    data: Mapping[str, Any], section: str, key: str, name: str
) -> Mapping[str, Any]:
    for entry in data.get(section) or []:
        if entry.get("name") == name:
            return entry.get(key) or {}
    raise KubeconfigError(f"No {key} named '{name}' in kubeconfig")


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _optional_path(base_dir: Path, value: str | None) -> Path | None:
    return _resolve(base_dir, value) if value else None


def _decode(value: str | None) -> str | None:
    return base64.b64decode(value).decode() if value else None
