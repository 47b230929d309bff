"""Deterministic identifier generation.

Two independent strategies:

- ``UniqueId`` hashes a fixed ``organization-project`` prefix together with a
  label, so repeated builds of the same org/project/label triple always yield
  the same resource name.
- ``SequentialId`` appends a per-label ordinal (``label:1``, ``label:2``, ...)
  scoped to the generator instance.
"""

from __future__ import annotations

import base64
import hashlib

from src.core.constants import COUNTER_SUFFIX_PATTERN, DEFAULT_ID_LENGTH
from src.core.exceptions import InvalidLabelError


class UniqueId:
    """Hash-derived identifiers namespaced by organization and project.

    Not a security primitive: md5 is used purely for a stable, well-spread
    digest over a small input space.
    """

    def __init__(self, organization: str, project: str, length: int = DEFAULT_ID_LENGTH) -> None:
        if not organization or not project:
            msg = "organization and project are required"
            raise ValueError(msg)
        self._validate_length(length)
        self._length: int = length
        self._prefix: str = f"{organization}-{project}"

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def default_length(self) -> int:
        return self._length

    def generate(self, label: str, length: int | None = None, lowercase: bool = False) -> str:
        """Derive the identifier for ``label``.

        Args:
            label: Resource label combined with the organization-project prefix.
            length: Overrides the instance default length.
            lowercase: Emit lowercase hex (e.g. for S3 bucket names).
        """
        if not label or not isinstance(label, str):
            msg = "label must be a non-empty string"
            raise ValueError(msg)
        size = self._length if length is None else length
        self._validate_length(size)

        encoded = base64.b64encode(f"{self._prefix}-{label}".encode("utf-8"))
        digest = hashlib.md5(encoded).hexdigest()  # noqa: S324
        result = digest[:size]
        return result.lower() if lowercase else result.upper()

    def generate_batch(self, labels: list[str], length: int | None = None) -> dict[str, str]:
        return {label: self.generate(label, length) for label in labels}

    def would_collide(self, first: str, second: str, length: int | None = None) -> bool:
        """True when two labels map to the same identifier at ``length``."""
        return self.generate(first, length) == self.generate(second, length)

    @staticmethod
    def _validate_length(length: int) -> None:
        if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
            msg = f"length must be a positive integer: {length!r}"
            raise ValueError(msg)


class SequentialId:
    """Counter-derived labels, one counter per label per instance."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def generate(self, label: str) -> str:
        """Return ``label:N`` with the next ordinal for ``label``.

        Labels that already end in ``:<digits>`` are returned unchanged so an
        already-qualified label is never suffixed twice.

        Raises:
            InvalidLabelError: If ``label`` is empty or not a string.
        """
        if not isinstance(label, str) or not label:
            msg = "Label must be a non-empty string"
            raise InvalidLabelError(msg, context={"label": repr(label)})

        if COUNTER_SUFFIX_PATTERN.search(label):
            return label

        ordinal = self._counters.get(label, 0) + 1
        self._counters[label] = ordinal
        return f"{label}:{ordinal}"

    def peek(self, label: str) -> int:
        """Last ordinal handed out for ``label`` (0 if none)."""
        return self._counters.get(label, 0)

    def reset(self) -> None:
        self._counters.clear()
