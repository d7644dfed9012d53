"""
CA certificate handling for backend connections.

A trusted CA is configured as the base64 body of a certificate, with or
without the ``-----BEGIN/END CERTIFICATE-----`` markers and line breaks.
Native clients expect a PEM file on disk, so the decoded certificate is
re-emitted as PEM into a private temporary file.
"""

import base64
import binascii
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)

BEGIN_MARKER = "-----BEGIN CERTIFICATE-----"
END_MARKER = "-----END CERTIFICATE-----"


def normalize_certificate(ca: str) -> str:
    """Base64 body of a certificate with markers and whitespace removed."""
    body = ca.replace(BEGIN_MARKER, "").replace(END_MARKER, "")
    return "".join(body.split())


def load_ca_certificate(ca: str) -> x509.Certificate:
    """
    Decode a configured CA certificate.

    Args:
        ca: Base64 DER body, optionally PEM-framed

    Returns:
        Parsed certificate

    Raises:
        ValueError: If the text is not a valid base64 DER certificate
    """
    try:
        der = base64.b64decode(normalize_certificate(ca), validate=True)
    except binascii.Error as e:
        raise ValueError(f"CA certificate is not valid base64: {e}")
    if not der:
        raise ValueError("CA certificate is empty")
    return x509.load_der_x509_certificate(der)


class CertificateBundle:
    """
    PEM file holding one trusted CA certificate.

    Args:
        certificate: Certificate to write
        directory: Directory for the file, system temp directory by default
    """

    def __init__(self, certificate: x509.Certificate, directory: Optional[str] = None) -> None:
        self.certificate = certificate
        fd, name = tempfile.mkstemp(prefix="kvconfig-ca-", suffix=".pem", dir=directory)
        with os.fdopen(fd, "wb") as f:
            f.write(certificate.public_bytes(serialization.Encoding.PEM))
        self.path = Path(name)
        logger.debug(f"CA certificate written to {self.path}")

    def cleanup(self) -> None:
        """Remove the PEM file."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def prepare_ca_bundle(ca: Optional[str], directory: Optional[str] = None) -> Optional[CertificateBundle]:
    """
    Turn a configured CA into a PEM bundle for a native client.

    Invalid certificates are logged and ignored; the connection then proceeds
    with the default trust store.

    Returns:
        Bundle, or None if no CA is configured or it cannot be decoded
    """
    if not ca or not ca.strip():
        return None
    try:
        certificate = load_ca_certificate(ca)
    except ValueError as e:
        logger.error(f"Ignoring invalid CA certificate: {e}")
        return None
    return CertificateBundle(certificate, directory)
