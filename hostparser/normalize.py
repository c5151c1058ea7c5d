"""Reduce hostnames to their registrable domain using the Public Suffix List."""

import logging
from pathlib import Path

import tldextract

from . import NormalizedDomain

logger = logging.getLogger(__name__)


class Normalizer:
    """Shared, read-only wrapper around one ``tldextract.TLDExtract``.

    The suffix list is loaded once when the normalizer is built; after that
    :meth:`normalize` only reads it and can be called from any worker.
    """

    def __init__(
        self,
        include_private: bool = False,
        offline: bool = False,
        cache_dir: Path | str | None = None,
    ) -> None:
        kwargs: dict = {"include_psl_private_domains": include_private}
        if offline:
            # bundled snapshot only
            kwargs["suffix_list_urls"] = ()
            kwargs["cache_dir"] = str(cache_dir) if cache_dir else None
        elif cache_dir is not None:
            kwargs["cache_dir"] = str(cache_dir)
        self._extract = tldextract.TLDExtract(**kwargs)
        # load the suffix list now instead of inside the first worker
        self._extract("example.com")
        logger.debug(
            f"Suffix list loaded (offline={offline}, private={include_private})"
        )

    def normalize(self, host: str) -> NormalizedDomain | None:
        """Return the registrable domain of ``host`` or ``None``.

        Example:
            www.example.co.uk -> example.co.uk
        """
        if not host or host.isspace():
            return None
        try:
            ext = self._extract(host.strip())
        except Exception as e:
            logger.debug(f"Could not extract {host!r}: {e}")
            return None
        if not ext.domain or not ext.suffix:
            return None
        return NormalizedDomain(ext.domain.lower(), ext.suffix.lower())

