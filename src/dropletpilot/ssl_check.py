"""Validation of SSL certificate and key material."""
import logging
import os
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from cryptography.x509.oid import NameOID

from .errors import SSLValidationError
from .models import SSLConfig

logger = logging.getLogger('DropletPilot')


def _read_file(path: str, label: str) -> bytes:
    if not os.path.isabs(path):
        raise SSLValidationError(f"{label} must be an absolute path: {path}")
    if not os.access(path, os.R_OK):
        exists = "Yes" if os.path.exists(path) else "No"
        raise SSLValidationError(f"{label} not readable: {path} (file exists: {exists})")
    with open(path, 'rb') as f:
        return f.read()


def certificate_domain(certificate: x509.Certificate) -> Optional[str]:
    """Domain a certificate was issued for: the CN, else the first SAN DNS name."""
    common_names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if common_names and common_names[0].value:
        return str(common_names[0].value)

    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return None
    dns_names = san.value.get_values_for_type(x509.DNSName)
    return dns_names[0] if dns_names else None


def validate_ssl(domain: Optional[str], cert_path: Optional[str], key_path: Optional[str]) -> Optional[SSLConfig]:
    """Validate SSL settings.

    Returns None when any of the three values is missing: the deployment then
    runs without SSL. When all three are present, the files must be readable
    PEM material and the certificate must be issued for ``domain``.

    Raises:
        SSLValidationError: SSL was configured but the material is invalid.
    """
    if not domain or not cert_path or not key_path:
        logger.info("SSL configuration not provided - running without SSL")
        return None

    logger.info(f"Validating SSL configuration for {domain} (cert: {cert_path}, key: {key_path})")

    cert_data = _read_file(cert_path, "SSL certificate")
    key_data = _read_file(key_path, "SSL key")

    try:
        certificate = x509.load_pem_x509_certificate(cert_data)
    except ValueError as e:
        raise SSLValidationError(f"Invalid certificate format in {cert_path}: {e}") from e

    try:
        load_pem_private_key(key_data, password=None)
    except (ValueError, TypeError) as e:
        raise SSLValidationError(f"Invalid key format in {key_path}: {e}") from e

    cert_domain = certificate_domain(certificate)
    if not cert_domain:
        raise SSLValidationError("Could not extract domain from certificate: no CN or DNS SAN found")
    if cert_domain != domain:
        raise SSLValidationError(
            f"Certificate domain does not match DO_DOMAIN (expected {domain}, certificate has {cert_domain})"
        )

    logger.info(f"SSL configuration valid for {domain}")
    return SSLConfig(domain=domain, cert_path=cert_path, key_path=key_path)
