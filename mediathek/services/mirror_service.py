"""
Mirror list handling

Parses the mirror list document and picks a catalog download source.
"""
import logging
import random
from collections.abc import Collection, Sequence

from lxml import etree  # type: ignore

from mediathek.exceptions import MalformedCatalogError


logger = logging.getLogger(__name__)

ROOT_TAG = "Mediathek"
SERVER_TAG = "Server"
URL_TAG = "URL"


def parse_mirror_list(content: bytes) -> list[str]:
    """
    Extract catalog download URLs from a mirror list document

    Args:
        content: Raw XML document

    Returns:
        One URL per server entry with a non-empty URL

    Raises:
        MalformedCatalogError: If the root element is wrong or no URL is listed
    """
    try:
        root = etree.fromstring(content, parser=etree.XMLParser(resolve_entities=False))
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.error(f"  Mirror list XML error: {e}")
        raise MalformedCatalogError("Received a malformed mirror list.") from e

    if root.tag != ROOT_TAG:
        logger.error(f"  Unexpected mirror list root tag: {root.tag}")
        raise MalformedCatalogError("Received a malformed mirror list.")

    mirrors = []
    for server in root.findall(SERVER_TAG):
        url = _get_text(server, URL_TAG)
        if not url:
            logger.debug("Skipping server entry without URL")
            continue
        mirrors.append(url)

    if not mirrors:
        raise MalformedCatalogError("Received an empty mirror list.")

    logger.debug(f"Mirror list parsed: {len(mirrors)} mirrors")
    return mirrors


class MirrorSelector:
    """Picks catalog download sources uniformly at random."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def choose(self, mirrors: Sequence[str], exclude: Collection[str] = ()) -> str:
        """
        Pick one mirror, preferring those not in `exclude`.

        Raises:
            ValueError: If no mirror is known
        """
        if not mirrors:
            raise ValueError("No mirrors available")

        candidates = [mirror for mirror in mirrors if mirror not in exclude]
        return self._rng.choice(candidates or list(mirrors))


def _get_text(element: etree._Element, tag: str) -> str:
    child = element.find(tag)
    if child is None or not child.text:
        return ""
    return child.text.strip()
