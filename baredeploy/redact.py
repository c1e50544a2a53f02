"""
Credential handling for repository URLs.

The access token is injected into https clone URLs and must never reach logs or
console output in clear text.
"""

import re
from typing import Iterable, Optional
from urllib.parse import quote

REDACTED = "***"

# user:pass@ or token@ inside a URL authority
_URL_CREDENTIALS = re.compile(r"(https?://)[^/@\s]+@")


def authenticated_url(repo_url: str, token: Optional[str]) -> str:
    """
    Return ``repo_url`` with ``token`` embedded for https clones.

    Non-https URLs (ssh, local paths) are returned unchanged.
    """
    if not token or not repo_url.startswith("https://"):
        return repo_url
    rest = repo_url[len("https://"):]
    if "@" in rest.split("/", 1)[0]:
        # already carries credentials
        return repo_url
    return f"https://{quote(token, safe='')}@{rest}"


def redact_string(text: str, secrets: Iterable[Optional[str]] = ()) -> str:
    """
    Mask URL credentials and any of the given secret values in ``text``.
    """
    if not text:
        return text
    redacted = _URL_CREDENTIALS.sub(rf"\1{REDACTED}@", text)
    for secret in secrets:
        if secret and len(secret) >= 4:
            redacted = redacted.replace(secret, REDACTED)
            redacted = redacted.replace(quote(secret, safe=""), REDACTED)
    return redacted
