from pytest import raises

import ssl

from sockserve.connections import KeyStore, TlsConfiguration, TrustStore
from sockserve.errors import ConfigurationError


def test_tls_configuration_requires_key_store():
    tls = TlsConfiguration()
    assert not tls.is_key_store_configured
    assert not tls.is_initialised

    with raises(ConfigurationError, match="KeyStore must be configured"):
        tls.initialise()

    assert not tls.is_initialised


def test_tls_configuration_initialise(certificate, private_key):
    tls = TlsConfiguration(KeyStore(certificate, private_key))
    assert tls.is_key_store_configured

    tls.initialise()
    assert tls.is_initialised

    context = tls.create_server_context()
    assert isinstance(context, ssl.SSLContext)
    assert context.verify_mode == ssl.CERT_NONE

    # Initialisation is idempotent
    tls.initialise()
    assert tls.create_server_context() is context


def test_tls_configuration_with_trust_store(certificate, private_key):
    tls = TlsConfiguration(
        KeyStore(certificate, private_key),
        TrustStore(cafile=certificate),
        require_client_auth=True,
        minimum_version=ssl.TLSVersion.TLSv1_2,
    )
    context = tls.create_server_context()
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


def test_tls_configuration_client_auth_needs_trust_store(certificate, private_key):
    tls = TlsConfiguration(KeyStore(certificate, private_key), require_client_auth=True)
    with raises(ConfigurationError, match="TrustStore"):
        tls.initialise()


def test_tls_configuration_reports_unreadable_files(tmp_path, certificate):
    missing = str(tmp_path / "missing.pem")
    tls = TlsConfiguration(KeyStore(missing))
    with raises(ConfigurationError, match="missing.pem"):
        tls.initialise()

    # Certificate without its private key
    tls = TlsConfiguration(KeyStore(certificate))
    with raises(ConfigurationError):
        tls.initialise()


def test_tls_configuration_rejects_invalid_ciphers(certificate, private_key):
    tls = TlsConfiguration(
        KeyStore(certificate, private_key), ciphers=["NO-SUCH-CIPHER"]
    )
    with raises(ConfigurationError, match="Invalid cipher list"):
        tls.initialise()
