from __future__ import annotations


class LicenseResolverError(Exception):
    """Base class for license resolution failures."""


class RegistryLoadError(LicenseResolverError):
    """The bundled license corpus or a configured table could not be loaded."""


class ExpressionSyntaxError(LicenseResolverError):
    pass


class FetchError(LicenseResolverError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class CatalogStoreError(LicenseResolverError):
    pass
