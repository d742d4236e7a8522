"""Connection settings for the Kubernetes API server."""

import ssl
import tempfile
from pathlib import Path

from pydantic import BaseModel, SecretStr


class ClusterConfig(BaseModel):
    """Configuration for talking to one Kubernetes API server.

    Certificates may be given as file paths or as inline PEM data, matching the
    two forms a kubeconfig allows.
    """

    server: str
    token: SecretStr | None = None
    certificate_authority: Path | None = None
    certificate_authority_data: str | None = None
    client_certificate: Path | None = None
    client_certificate_data: str | None = None
    client_key: Path | None = None
    client_key_data: SecretStr | None = None
    insecure_skip_tls_verify: bool = False
    namespace: str = "default"

    @property
    def base_url(self) -> str:
        """Server URL without a trailing slash; API paths are absolute."""
        return self.server.rstrip("/")

    def ssl_context(self) -> ssl.SSLContext | bool:
        """Build the TLS settings for the API connection.

        Returns False when verification is disabled, in the form aiohttp
        expects for its ``ssl`` argument.
        """
        if self.insecure_skip_tls_verify:
            return False

        context = ssl.create_default_context(
            cafile=self.certificate_authority,
            cadata=self.certificate_authority_data,
        )

        if self.client_certificate and self.client_key:
            context.load_cert_chain(self.client_certificate, self.client_key)
        elif self.client_certificate_data and self.client_key_data:
            # load_cert_chain only reads files; the loaded chain stays in memory
            with tempfile.TemporaryDirectory() as directory:
                cert_path = Path(directory) / "client.crt"
                key_path = Path(directory) / "client.key"
                cert_path.write_text(self.client_certificate_data)
                key_path.write_text(self.client_key_data.get_secret_value())
                context.load_cert_chain(cert_path, key_path)

        return context
