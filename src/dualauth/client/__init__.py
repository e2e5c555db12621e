"""HTTP integration for dualauth.

:class:`AuthInterceptor` provides :mod:`httpx` event hooks that attach the
current credential to outgoing requests and publish ``loginRequired`` /
``permissionDenied`` when the API answers 401 / 403.
"""

from dualauth.client.interceptor import GUEST_HEADER, AuthInterceptor

__all__ = ["AuthInterceptor", "GUEST_HEADER"]
