"""TLS configuration objects for server-side sockets.

The presence of a TlsConfiguration_ on a listener means that the listener
must use TLS. A server-side TLS configuration is useful only if it carries a
key store, i.e. the certificate chain and private key that identify the
server during the handshake.
"""

import attr
import logging
import ssl

from typing import Optional, Sequence

from sockserve.errors import ConfigurationError

__all__ = ("KeyStore", "TlsConfiguration", "TrustStore")


log = logging.getLogger(__name__.rpartition(".")[0])


@attr.s(frozen=True)
class KeyStore:
    """Server identity: a PEM certificate chain and its private key."""

    certificate: str = attr.ib()
    """Path to the PEM file holding the certificate chain of the server. The
    file may contain the private key as well.
    """

    key: Optional[str] = attr.ib(default=None)
    """Path to the PEM file holding the private key of the server if it is not
    stored in the certificate file.
    """

    password: Optional[str] = attr.ib(default=None, repr=False)
    """Password that decrypts the private key, if it is encrypted."""


@attr.s(frozen=True)
class TrustStore:
    """Certificate authorities that the server trusts when it verifies client
    certificates.
    """

    cafile: Optional[str] = attr.ib(default=None)
    capath: Optional[str] = attr.ib(default=None)

    @property
    def is_configured(self) -> bool:
        return self.cafile is not None or self.capath is not None


class TlsConfiguration:
    """Trust and key material for a server-side TLS listener.

    The configuration is initialised lazily; `initialise()` loads the
    certificates from disk and constructs the SSL context that the listener
    will use. It is safe to call `initialise()` multiple times.
    """

    def __init__(
        self,
        key_store: Optional[KeyStore] = None,
        trust_store: Optional[TrustStore] = None,
        *,
        require_client_auth: bool = False,
        minimum_version: Optional[ssl.TLSVersion] = None,
        ciphers: Optional[Sequence[str]] = None,
    ):
        """Constructor.

        Parameters:
            key_store: the certificate chain and private key of the server
            trust_store: the certificate authorities used to verify client
                certificates
            require_client_auth: whether clients must present a certificate
                that can be verified with the trust store
            minimum_version: the minimum TLS version that the server accepts;
                ``None`` keeps the default of the ``ssl`` module
            ciphers: the list of enabled cipher suites in OpenSSL cipher list
                format; ``None`` keeps the defaults
        """
        self.key_store = key_store
        self.trust_store = trust_store
        self.require_client_auth = bool(require_client_auth)
        self.minimum_version = minimum_version
        self.ciphers = list(ciphers) if ciphers else None

        self._context: Optional[ssl.SSLContext] = None

    @property
    def is_initialised(self) -> bool:
        return self._context is not None

    @property
    def is_key_store_configured(self) -> bool:
        """Returns whether the configuration carries a server identity."""
        return self.key_store is not None

    def create_server_context(self) -> ssl.SSLContext:
        """Returns the server-side SSL context of this configuration,
        initialising the configuration first if needed.
        """
        self.initialise()
        assert self._context is not None
        return self._context

    def initialise(self) -> None:
        """Loads the certificates and private keys from disk and constructs
        the server-side SSL context. No-op if the configuration was
        initialised already.

        Raises:
            ConfigurationError: if the key store is missing, if the key or
                trust material cannot be loaded, or if client authentication is
                requested without a trust store
        """
        if self._context is not None:
            return

        if self.key_store is None:
            raise ConfigurationError("KeyStore must be configured for server side TLS")

        if self.require_client_auth and not (
            self.trust_store and self.trust_store.is_configured
        ):
            raise ConfigurationError(
                "TrustStore must be configured when client authentication is required"
            )

        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        if self.minimum_version is not None:
            context.minimum_version = self.minimum_version
        if self.ciphers:
            try:
                context.set_ciphers(":".join(self.ciphers))
            except ssl.SSLError as ex:
                raise ConfigurationError(f"Invalid cipher list: {ex}") from ex

        key_store = self.key_store
        try:
            context.load_cert_chain(
                key_store.certificate, key_store.key, key_store.password
            )
        except (OSError, ssl.SSLError) as ex:
            raise ConfigurationError(
                f"Cannot load key store from {key_store.certificate!r}: {ex}"
            ) from ex

        if self.trust_store and self.trust_store.is_configured:
            try:
                context.load_verify_locations(
                    cafile=self.trust_store.cafile, capath=self.trust_store.capath
                )
            except (OSError, ssl.SSLError) as ex:
                raise ConfigurationError(f"Cannot load trust store: {ex}") from ex
            context.verify_mode = (
                ssl.CERT_REQUIRED if self.require_client_auth else ssl.CERT_OPTIONAL
            )
        else:
            context.verify_mode = ssl.CERT_NONE

        self._context = context
        log.debug("TLS context loaded from {0!r}".format(key_store.certificate))
