"""Map image references to filesystem-safe base names."""

import logging
import re

logger = logging.getLogger(__name__)

_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")


def sanitize(ref: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with '_'.

    Total, deterministic and idempotent. Distinct references may collide
    (e.g. 'a/b:c' and 'a_b_c'); see NameRegistry.

    Examples:
        docker.io/library/nginx:1.25 → docker.io_library_nginx_1.25
        sha256:abc → sha256_abc
    """
    return _DISALLOWED.sub("_", ref)


class NameRegistry:
    """Tracks base names claimed within one run.

    By default a repeated base name is returned unchanged, so the later
    report overwrites the earlier one (a warning names both references).
    With disambiguate=True repeats get '-2', '-3', ... suffixes.
    """

    def __init__(self, disambiguate: bool = False):
        self.disambiguate = disambiguate
        self._owners: dict[str, str] = {}  # base name → ref
        self._claimed: dict[str, str] = {}  # ref → base name

    def claim(self, ref: str) -> str:
        """Return the base name to use for ref's artifacts."""
        if ref in self._claimed:
            return self._claimed[ref]

        base = sanitize(ref)
        owner = self._owners.get(base)
        if owner is None:
            self._owners[base] = ref
            self._claimed[ref] = base
            return base

        if not self.disambiguate:
            logger.warning(
                f"'{ref}' and '{owner}' both map to '{base}'; the later report overwrites the earlier"
            )
            self._owners[base] = ref
            self._claimed[ref] = base
            return base

        suffix = 2
        while f"{base}-{suffix}" in self._owners:
            suffix += 1
        unique = f"{base}-{suffix}"
        self._owners[unique] = ref
        self._claimed[ref] = unique
        logger.info(f"'{ref}' collides with '{owner}' on '{base}', using '{unique}'")
        return unique
