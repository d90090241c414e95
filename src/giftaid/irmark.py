"""IRmark generation for outgoing GovTalk messages.

The IRmark is a base64 SHA-1 digest of the canonicalized message ``Body``
with the IRmark element itself removed. Outgoing messages carry the
placeholder token inside ``<IRmark Type="generic">`` until the digest is
known.
"""

import base64
import hashlib
import logging
import re
from typing import Optional

from lxml import etree

from .exceptions import IRmarkError

logger = logging.getLogger(__name__)

IRMARK_PLACEHOLDER = "IRmark+Token"

_BODY_PATTERN = re.compile(r"<Body>(.*)</Body>", re.DOTALL)
_IRMARK_ELEMENT_PATTERN = re.compile(
    r'<(vat:)?IRmark Type="generic">[A-Za-z0-9/+=]*</(vat:)?IRmark>'
)


def _namespace_declarations(nsmap: Optional[dict]) -> str:
    declarations = []
    for prefix, uri in (nsmap or {}).items():
        if prefix:
            declarations.append(f'xmlns:{prefix}="{uri}"')
        else:
            declarations.append(f'xmlns="{uri}"')
    return " ".join(declarations)


def compute_irmark(envelope_xml: str) -> bytes:
    """Compute the raw IRmark digest of a serialized GovTalk message.

    The body is extracted textually, so the namespaces declared on the
    message root are re-declared on a rebuilt ``Body`` before
    canonicalization.

    Args:
        envelope_xml: Full GovTalk message containing exactly one IRmark element

    Returns:
        SHA-1 digest bytes

    Raises:
        IRmarkError: If the body or a single IRmark element cannot be found
    """
    try:
        root = etree.fromstring(envelope_xml.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise IRmarkError(f"Envelope is not well-formed XML: {e}") from e

    match = _BODY_PATTERN.search(envelope_xml)
    if match is None:
        raise IRmarkError("Envelope has no Body element")

    body, match_count = _IRMARK_ELEMENT_PATTERN.subn("", match.group(1))
    if match_count != 1:
        raise IRmarkError(f"Expected exactly one IRmark element, found {match_count}")

    declarations = _namespace_declarations(root.nsmap)
    opening = f"<Body {declarations}>" if declarations else "<Body>"
    body_element = etree.fromstring(f"{opening}{body}</Body>".encode("utf-8"))

    canonical = etree.tostring(body_element, method="c14n")
    return hashlib.sha1(canonical).digest()


def apply_irmark(envelope_xml: str) -> str:
    """Replace the IRmark placeholder with the digest of the message body."""
    placeholder_count = envelope_xml.count(IRMARK_PLACEHOLDER)
    if placeholder_count != 1:
        raise IRmarkError(
            f"Expected exactly one {IRMARK_PLACEHOLDER} placeholder, found {placeholder_count}"
        )

    irmark = base64.b64encode(compute_irmark(envelope_xml)).decode("ascii")
    logger.debug(f"Computed IRmark {irmark}")
    return envelope_xml.replace(IRMARK_PLACEHOLDER, irmark, 1)
