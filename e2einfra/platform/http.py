"""
Minimal JSON transport on top of urllib, plus transport factory loading.

Used when the suite config names no ``transport``. Real suites usually plug
in their own transport (TLS settings, proxies, recording) through the
``transport: "module:callable"`` config key.
"""

import importlib
import json
import urllib.error
import urllib.request
from typing import Any

from ..exceptions import ConfigError
from .request import OutboundRequest, Response, Transport


class UrllibTransport:
    """
    Transport sending JSON requests with ``urllib.request``.

    HTTP error statuses are returned as responses (status mapping is the
    client's job); connection failures propagate as OSError.
    """

    def __call__(self, request: OutboundRequest, timeout: float) -> Response:
        data = None
        if request.body is not None:
            data = json.dumps(request.body).encode("utf-8")

        req = urllib.request.Request(
            request.url,
            data=data,
            headers=dict(request.headers),
            method=request.method,
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return Response(resp.status, dict(resp.headers), _decode(resp.read()))
        except urllib.error.HTTPError as e:
            with e:
                return Response(e.code, dict(e.headers or {}), _decode(e.read()))


def _decode(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def load_transport(path: str | None) -> Transport:
    """
    Build the transport named by a ``module:callable`` import path.

    The callable is invoked without arguments and must return a Transport.
    Without a path the urllib transport is used.

    Raises:
        ConfigError: If the path is malformed or cannot be imported
    """
    if not path:
        return UrllibTransport()

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError("transport must be given as 'module:callable'", transport=path)

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError("cannot load transport", transport=path) from e

    return factory()
