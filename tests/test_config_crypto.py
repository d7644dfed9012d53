"""
Tests for CA certificate handling.
"""

import base64
import datetime
import os
import stat
import sys

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from kvconfig.infrastructure.config.crypto import (
    CertificateBundle, load_ca_certificate, normalize_certificate, prepare_ca_bundle
)


@pytest.fixture(scope="module")
def certificate() -> x509.Certificate:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "kvconfig-test-ca")])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


@pytest.fixture
def pem_text(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture
def der_body(certificate: x509.Certificate) -> str:
    return base64.b64encode(certificate.public_bytes(serialization.Encoding.DER)).decode("ascii")


class TestLoadCertificate:

    def test_normalize_strips_markers_and_whitespace(self, pem_text: str, der_body: str) -> None:
        assert normalize_certificate(pem_text) == der_body

    def test_load_from_pem(self, pem_text: str, certificate: x509.Certificate) -> None:
        assert load_ca_certificate(pem_text) == certificate

    def test_load_from_bare_body(self, der_body: str, certificate: x509.Certificate) -> None:
        assert load_ca_certificate(der_body) == certificate

    def test_invalid_base64(self) -> None:
        with pytest.raises(ValueError):
            load_ca_certificate("not base64 !!!")

    def test_valid_base64_but_not_a_certificate(self) -> None:
        with pytest.raises(ValueError):
            load_ca_certificate(base64.b64encode(b"hello world").decode("ascii"))


class TestPrepareBundle:

    def test_no_ca(self) -> None:
        assert prepare_ca_bundle(None) is None
        assert prepare_ca_bundle("   ") is None

    def test_invalid_ca_is_ignored(self) -> None:
        assert prepare_ca_bundle("garbage") is None

    def test_bundle_written_as_pem(self, der_body: str, tmp_path) -> None:
        bundle = prepare_ca_bundle(der_body, directory=str(tmp_path))

        assert isinstance(bundle, CertificateBundle)
        assert bundle.path.exists()
        assert bundle.path.read_text().startswith("-----BEGIN CERTIFICATE-----")

        bundle.cleanup()
        assert not bundle.path.exists()
        bundle.cleanup()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_bundle_is_private(self, der_body: str, tmp_path) -> None:
        bundle = prepare_ca_bundle(der_body, directory=str(tmp_path))

        mode = stat.S_IMODE(os.stat(bundle.path).st_mode)
        assert mode == 0o600
        bundle.cleanup()
