"""Map gateway errors back to the donations that caused them."""

import logging
import re
from typing import Optional

from lxml import etree

from .govtalk import GovTalkResponse
from .models import DonationIdMap, GatewayError, ResponseErrors

logger = logging.getLogger(__name__)

# "Your submission failed due to business validation errors. Please see
# below for details." Always accompanied by the specific errors.
GENERIC_BUSINESS_FAILURE = "3001"

GAD_LOCATION_PATTERN = re.compile(
    r"^/hd:GovTalkMessage\[1\]/hd:Body\[1\]/r68:IRenvelope\[1\]/r68:R68\[1\]/"
    r"r68:Claim\[(\d+)\]/r68:Repayment\[1\]/r68:GAD\[(\d+)\].+$"
)


def resolve_donation_id(location: Optional[str], id_map: DonationIdMap) -> Optional[str]:
    """Find the caller's donation id for a schema error location, if any."""
    if not location:
        return None
    match = GAD_LOCATION_PATTERN.match(location)
    if match is None:
        return None
    claim_number, gad_number = int(match.group(1)), int(match.group(2))
    return id_map.get(claim_number, {}).get(gad_number)


def _body_errors(body: Optional[etree._Element]) -> list[etree._Element]:
    if body is None:
        return []
    return body.findall("{*}ErrorResponse/{*}Error")


def _child_text(elem: etree._Element, tag: str) -> Optional[str]:
    child = elem.find(f"{{*}}{tag}")
    if child is not None and child.text:
        return child.text.strip()
    return None


def map_response_errors(response: GovTalkResponse, id_map: DonationIdMap) -> ResponseErrors:
    """Collect a response's errors, tracing business errors to donations.

    The generic business failure is dropped. When nothing else is left in
    any category, the specific errors are read from the body's
    ``ErrorResponse`` instead, each with the donation id its location
    points at (or None).
    """
    errors = response.errors
    errors.business = [e for e in errors.business if e.number != GENERIC_BUSINESS_FAILURE]

    if not errors.has_errors():
        for error in _body_errors(response.body):
            location = _child_text(error, "Location")
            donation_id = resolve_donation_id(location, id_map)
            errors.business.append(GatewayError(
                number=_child_text(error, "Number") or "",
                text=_child_text(error, "Text") or "",
                location=location or "",
                donation_id=donation_id,
            ))
        logger.debug(f"Read {len(errors.business)} errors from the response body")

    return errors


def distinct_erroring_donations(business_errors: list[GatewayError], id_map: DonationIdMap) -> list[str]:
    """Donation ids with errors, each once, in order of first appearance.

    Always empty when no donation ids were tracked.
    """
    if not id_map:
        return []

    donation_ids = []
    for error in business_errors:
        if error.donation_id and error.donation_id not in donation_ids:
            donation_ids.append(error.donation_id)
    return donation_ids
