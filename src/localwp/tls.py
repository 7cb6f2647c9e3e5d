"""Self-signed TLS material for local site domains."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .config import TLSConfig
from .errors import OperationFailed
from .templates import write_text_atomic


class CertificateError(OperationFailed):
    """Raised when certificate material cannot be generated or read."""


@dataclass(frozen=True)
class TLSMaterial:
    """Key, certificate and combined bundle for one domain."""

    key: Path
    certificate: Path
    bundle: Path

    def paths(self) -> tuple[Path, Path, Path]:
        """Return all three paths."""
        return (self.key, self.certificate, self.bundle)

    def exists(self) -> bool:
        """Return True when every file is present."""
        return all(path.is_file() for path in self.paths())


class CertificateProvisioner:
    """Issue and remove self-signed certificates in the proxy certificate directory."""

    def __init__(self, certs_dir: Path, config: TLSConfig | None = None) -> None:
        """Store the destination directory and key/validity parameters."""
        self.certs_dir = Path(certs_dir).expanduser()
        self.config = config or TLSConfig()

    def material(self, domain: str) -> TLSMaterial:
        """Return the file paths used for *domain*."""
        return TLSMaterial(
            key=self.certs_dir / f"{domain}.key",
            certificate=self.certs_dir / f"{domain}.crt",
            bundle=self.certs_dir / f"{domain}.pem",
        )

    def issue(self, domain: str) -> TLSMaterial:
        """Generate a key and certificate for *domain* and its wildcard."""
        material = self.material(domain)
        try:
            key = rsa.generate_private_key(public_exponent=65537, key_size=self.config.key_size)
            name = x509.Name(
                [
                    x509.NameAttribute(NameOID.COMMON_NAME, domain),
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.config.organization),
                    x509.NameAttribute(NameOID.COUNTRY_NAME, self.config.country),
                ]
            )
            now = datetime.now(UTC)
            cert = (
                x509.CertificateBuilder()
                .subject_name(name)
                .issuer_name(name)
                .public_key(key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now - timedelta(minutes=1))
                .not_valid_after(now + timedelta(days=self.config.validity_days))
                .add_extension(
                    x509.SubjectAlternativeName(
                        [x509.DNSName(domain), x509.DNSName(f"*.{domain}")]
                    ),
                    critical=False,
                )
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .sign(key, hashes.SHA256())
            )
        except ValueError as exc:
            raise CertificateError(f"Failed to generate certificate for {domain}: {exc}") from exc

        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        try:
            write_text_atomic(material.key, key_pem, mode=0o600)
            write_text_atomic(material.certificate, cert_pem, mode=0o644)
            write_text_atomic(material.bundle, cert_pem + key_pem, mode=0o600)
        except OSError as exc:
            raise CertificateError(f"Failed to write certificate for {domain}: {exc}") from exc
        return material

    def remove(self, domain: str) -> list[Path]:
        """Delete the files for *domain*; return the paths actually removed."""
        removed: list[Path] = []
        for path in self.material(domain).paths():
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(path)
        return removed

    def expires_at(self, domain: str) -> datetime | None:
        """Return the certificate expiry for *domain*, or None when absent."""
        path = self.material(domain).certificate
        if not path.is_file():
            return None
        try:
            cert = x509.load_pem_x509_certificate(path.read_bytes())
        except ValueError as exc:
            raise CertificateError(f"Unreadable certificate {path}: {exc}") from exc
        return cert.not_valid_after_utc


__all__ = ["CertificateError", "CertificateProvisioner", "TLSMaterial"]
