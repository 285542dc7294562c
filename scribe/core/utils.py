"""
Common utilities.
"""

import base64
import re

__all__ = [
    "MULTIHASH",
    "encode_multibase",
    "decode_multibase",
    "normalize_endpoint",
]

MULTIHASH = "sha2-256"
"""
Multihash function used for all content written by Scribe.
"""

_MULTIADDR_RE = re.compile(r"^/(ip4|ip6|dns|dns4|dns6)/([^/]+)/tcp/(\d+)/?$")


def encode_multibase(data: bytes) -> str:
    """
    Encode data as unpadded base64url with the multibase `u` prefix, as
    expected by the pubsub RPC commands for topic names.
    """
    return "u" + base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_multibase(value: str) -> bytes:
    """
    Decode a multibase string. Supports the encodings emitted by the
    daemon for pubsub messages.
    """
    if not value:
        return b""

    prefix, body = value[0], value[1:]

    if prefix in ("u", "U"):
        return base64.urlsafe_b64decode(_pad(body))
    if prefix in ("m", "M"):
        return base64.b64decode(_pad(body))
    if prefix == "f":
        return bytes.fromhex(body)

    raise ValueError(f"unsupported multibase prefix '{prefix}' in: {value}")


def normalize_endpoint(endpoint: str) -> str:
    """
    Get base URL of daemon API from `host:port`, a URL or a TCP multiaddr,
    e.g. `/ip4/127.0.0.1/tcp/5001`.
    """
    endpoint = endpoint.strip()
    assert endpoint, "API endpoint is required"

    if match := _MULTIADDR_RE.match(endpoint):
        proto, host, port = match.groups()
        if proto == "ip6":
            host = f"[{host}]"
        return f"http://{host}:{port}"

    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"

    return endpoint.rstrip("/")


def _pad(body: str) -> str:
    return body + "=" * (-len(body) % 4)
