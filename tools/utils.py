"""Shared HTTP utilities for the search provider and webhook notifications."""

import ssl

import certifi

USER_AGENT = "press-review-pipeline/0.1 (+aiohttp)"


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create SSL context using the certifi CA bundle.

    Args:
        verify: If False, disable certificate verification (local test
            endpoints with self-signed certificates)
    """
    if verify:
        return ssl.create_default_context(cafile=certifi.where())
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx
