"""
File-reference resolution for message attachments.

Files are uploaded and stored by the file service; a chat message only
carries a reference to them. The resolver configured in
settings.CHAT_FILE_REFERENCE_RESOLVER validates that reference and returns
its canonical form before the message is persisted.

A resolver is any callable object with the FileReferenceResolver shape:

    class SignedUrlResolver:
        def resolve(self, reference: str, user) -> str | None: ...

Returning None rejects the reference.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from urllib.parse import urlparse

from django.conf import settings
from django.utils.module_loading import import_string

from chat.constants import MESSAGE_CONFIG

if TYPE_CHECKING:
    from authentication.models import User


@runtime_checkable
class FileReferenceResolver(Protocol):
    """Protocol for attachment reference resolvers."""

    def resolve(self, reference: str, user: User) -> str | None:
        """
        Validate a file reference.

        Args:
            reference: Reference supplied by the client
            user: User attaching the file

        Returns:
            Canonical reference, or None if the reference is not acceptable
        """
        ...


class DefaultFileReferenceResolver:
    """
    Accepts absolute http(s) URLs and server-relative paths.

    Examples:
        https://files.example.com/abc/report.pdf -> unchanged
        /uploads/abc/report.pdf                  -> unchanged
        ../etc/passwd, ftp://host/file, ""       -> rejected
    """

    ALLOWED_SCHEMES = ("http", "https")

    def resolve(self, reference: str, user: User) -> str | None:
        reference = (reference or "").strip()
        if not reference or len(reference) > MESSAGE_CONFIG.MAX_FILE_REF_LENGTH:
            return None

        parsed = urlparse(reference)
        if parsed.scheme:
            if parsed.scheme not in self.ALLOWED_SCHEMES or not parsed.netloc:
                return None
            return reference

        if not reference.startswith("/") or ".." in reference.split("/"):
            return None
        return reference


@lru_cache(maxsize=1)
def _load_resolver(path: str) -> FileReferenceResolver:
    return import_string(path)()


def get_file_reference_resolver() -> FileReferenceResolver:
    """Return the configured resolver instance."""
    return _load_resolver(settings.CHAT_FILE_REFERENCE_RESOLVER)
