"""Text processing utilities."""

import hashlib
import hmac
import re

from wakegate.core.constants import TENANT_NAME_HASH_LENGTH, TENANT_NAME_PREFIX


# CSI sequences (colours, cursor movement) and bare two-byte escapes
_ANSI_ESCAPE = re.compile(r"\x1b(?:\[[0-?]*[ -/]*[@-~]|[@-Z\\-_])")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from terminal output.

    Examples:
        >>> strip_ansi("\\x1b[31mred\\x1b[0m plain")
        'red plain'
    """
    return _ANSI_ESCAPE.sub("", text)


def tenant_resource_name(tenant_id: str, namespace_key: str) -> str:
    """Derive the backend resource name for a tenant.

    The name is a keyed hash of the case-folded identity, so it is stable,
    safe to use as a container/network/volume name, and does not leak the
    user id to anyone listing containers on the host.

    Examples:
        >>> tenant_resource_name("Alice", "k") == tenant_resource_name("alice", "k")
        True
        >>> tenant_resource_name("alice", "k").startswith("app__")
        True
    """
    digest = hmac.new(
        namespace_key.encode(),
        tenant_id.lower().encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"{TENANT_NAME_PREFIX}{digest[:TENANT_NAME_HASH_LENGTH]}"
