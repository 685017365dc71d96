"""
Content-addressed virtual document URIs.

The whole virtual document travels inside the URI, so the client's virtual
filesystem can answer a read by decoding the address alone::

    qmdlsp-embedded://<language id>/<percent-encoded parent uri>.<ext>?<base64url content>

The ``.<ext>`` suffix lets the client pick the right language mode from the
path.  :func:`decode_uri` is the exact inverse of :func:`encode_uri`.
"""
from __future__ import annotations

import base64
import binascii
from urllib.parse import quote, unquote, urlsplit

EMBEDDED_SCHEME = 'qmdlsp-embedded'


def encode_uri(language_id: str, extension: str, content: str, parent_uri: str) -> str:
    """Return the content-addressed URI for a virtual document."""
    payload = base64.urlsafe_b64encode(content.encode('utf-8')).decode('ascii')
    parent = quote(parent_uri, safe='')
    return f'{EMBEDDED_SCHEME}://{quote(language_id, safe="")}/{parent}.{extension}?{payload}'


def decode_uri(uri: str) -> tuple[str, str, str]:
    """Decode *uri* into ``(language_id, content, parent_uri)``.

    Raises :class:`ValueError` if *uri* is not a well-formed embedded URI.
    """
    parts = urlsplit(uri)
    if parts.scheme != EMBEDDED_SCHEME:
        raise ValueError(f'not a {EMBEDDED_SCHEME} URI: {uri!r}')
    if not parts.netloc:
        raise ValueError(f'missing language in {uri!r}')

    path = parts.path.lstrip('/')
    # The parent is percent-encoded with safe='' so the last '.' is ours
    parent, dot, _ext = path.rpartition('.')
    if not dot or not parent:
        raise ValueError(f'missing parent document in {uri!r}')

    try:
        raw = base64.b64decode(parts.query.encode('ascii'), altchars=b'-_', validate=True)
        content = raw.decode('utf-8')
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f'corrupt content in {uri!r}: {e}') from e

    return unquote(parts.netloc), content, unquote(parent)


def is_embedded_uri(uri: str) -> bool:
    return uri.startswith(EMBEDDED_SCHEME + '://')
