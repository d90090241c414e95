"""Serialize donations into R68 ``Claim`` blocks.

Donations are first grouped into :class:`ClaimBlock` runs, a new block
starting each time the claiming organisation changes, then each block is
written out as a ``Claim`` element::

    Claim
      OrgName, HMRCref, Regulator (single-charity claims only)
      Repayment
        GAD (one per donation)
        EarliestGAdate, Adjustment
      GASDS (single-charity claims only)
      OtherInfo

The builder also returns a map from (claim ordinal, GAD ordinal) to the
caller's donation ids so gateway error locations can be traced back.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from lxml import etree

from .individual import Individual
from .models import (
    ClaimingOrganisation,
    ClaimRequest,
    DonationIdMap,
    DonationRecord,
    format_amount,
)

logger = logging.getLogger(__name__)


@dataclass
class ClaimBlock:
    """Donations for one organisation, in input order."""
    organisation: ClaimingOrganisation
    ordinal: int
    donations: list[DonationRecord] = field(default_factory=list)
    earliest_date: Optional[date] = None

    def add(self, donation: DonationRecord):
        self.donations.append(donation)
        if donation.donation_date is not None:
            if self.earliest_date is None or donation.donation_date < self.earliest_date:
                self.earliest_date = donation.donation_date


def group_donations(request: ClaimRequest, donations: Iterable[DonationRecord],
                    log: Optional[logging.Logger] = None) -> list[ClaimBlock]:
    """Partition donations into claim blocks, numbered from 1 in input order.

    A new block starts whenever a donation's organisation differs from the
    open block's, so A, B, A gives three blocks. In agent mode a donation
    without an organisation reference is skipped with a warning and leaves
    the open block as it is. A donation whose organisation is not
    configured closes the open block and is skipped with a warning.
    """
    log = log or logger
    blocks: list[ClaimBlock] = []
    current: Optional[ClaimBlock] = None
    sole_organisation = None if request.is_agent_multi_claim else request.organisation()

    for index, donation in enumerate(donations):
        if request.is_agent_multi_claim:
            org_ref = donation.org_hmrc_ref
            if not org_ref:
                log.warning(
                    f"Skipping donation index {index} ({donation.first_name} {donation.last_name}) "
                    f"with no org ref in agent multi mode"
                )
                continue
        elif sole_organisation is None:
            log.warning(f"Skipping donation index {index}: no claiming organisation configured")
            continue
        else:
            org_ref = sole_organisation.hmrc_ref

        if current is None or current.organisation.hmrc_ref != org_ref:
            current = None
            organisation = request.organisation(org_ref)
            if organisation is None:
                log.warning(f"Skipping donation with unknown org ref {org_ref}")
                continue
            current = ClaimBlock(organisation=organisation, ordinal=len(blocks) + 1)
            blocks.append(current)

        current.add(donation)

    return blocks


def _add(parent: etree._Element, tag: str, text: Optional[str] = None) -> etree._Element:
    elem = etree.SubElement(parent, tag)
    if text is not None:
        elem.text = str(text)
    return elem


class ClaimXmlBuilder:
    """Builds the claim section of an R68 body for one ClaimRequest."""

    def __init__(self, request: ClaimRequest, log: Optional[logging.Logger] = None):
        self.request = request
        self.log = log or logger

    @property
    def is_agent_multi_claim(self) -> bool:
        return self.request.is_agent_multi_claim

    def build(self, donations: Iterable[DonationRecord]) -> tuple[str, DonationIdMap]:
        """Serialize donations to Claim elements.

        Args:
            donations: Donations in the order they should be claimed

        Returns:
            Tuple of the XML fragment (Claim elements, no namespace) and the
            donation id map for the submission
        """
        blocks = group_donations(self.request, donations, self.log)
        id_map: DonationIdMap = {}
        parts = []

        for block in blocks:
            claim = self._build_claim(block, id_map)
            parts.append(etree.tostring(claim, encoding="unicode", pretty_print=True))

        return "".join(parts), id_map

    def _build_claim(self, block: ClaimBlock, id_map: DonationIdMap) -> etree._Element:
        claim = etree.Element("Claim")
        _add(claim, "OrgName", block.organisation.name)
        _add(claim, "HMRCref", block.organisation.hmrc_ref)

        # Gateway rejects Regulator alongside collecting agent details (LTS 7032)
        if not self.is_agent_multi_claim:
            self._add_regulator(claim, block.organisation)

        repayment = _add(claim, "Repayment")
        for gad_number, donation in enumerate(block.donations, 1):
            if donation.id:
                id_map.setdefault(block.ordinal, {})[gad_number] = donation.id
            self._add_gad(repayment, donation)

        earliest = block.earliest_date or date.today()
        _add(repayment, "EarliestGAdate", earliest.isoformat())
        if self.request.ga_adjustment.is_set:
            _add(repayment, "Adjustment", format_amount(self.request.ga_adjustment.amount))

        # Collecting agents must not include small donations scheme details (LTS 7044)
        if not self.is_agent_multi_claim:
            self._add_gasds(claim, block.organisation)

        other_info = []
        for adjustment in (self.request.gasds_adjustment, self.request.ga_adjustment):
            if adjustment.is_set and adjustment.reason:
                other_info.append(adjustment.reason)
        if other_info:
            _add(claim, "OtherInfo", " AND ".join(other_info))

        return claim

    def _add_regulator(self, claim: etree._Element, organisation: ClaimingOrganisation):
        regulator = _add(claim, "Regulator")
        if organisation.regulator is None:
            _add(regulator, "NoReg", "yes")
        elif organisation.has_standard_regulator():
            _add(regulator, "RegName", organisation.regulator)
        else:
            _add(regulator, "OtherReg", organisation.regulator)
        _add(regulator, "RegNo", organisation.reg_no or "")

    def _add_gad(self, repayment: etree._Element, donation: DonationRecord):
        gad = _add(repayment, "GAD")

        if not donation.is_aggregated:
            person = Individual(
                forename=donation.first_name,
                surname=donation.last_name,
                house_no=donation.house_no,
                title=donation.title,
                postcode=donation.postcode,
                overseas=donation.overseas,
            )
            donor = _add(gad, "Donor")
            if person.title:
                _add(donor, "Ttl", person.title)
            _add(donor, "Fore", person.forename)
            _add(donor, "Sur", person.surname)
            _add(donor, "House", person.house_no)
            if person.postcode:
                _add(donor, "Postcode", person.postcode)
            else:
                _add(donor, "Overseas", person.overseas_indicator)
        else:
            _add(gad, "AggDonation", donation.aggregation)

        if donation.sponsored is True:
            _add(gad, "Sponsored", "yes")
        _add(gad, "Date", donation.donation_date.isoformat() if donation.donation_date else "")
        _add(gad, "Total", format_amount(donation.amount))

    def _add_gasds(self, claim: etree._Element, organisation: ClaimingOrganisation):
        request = self.request
        gasds = _add(claim, "GASDS")
        _add(gasds, "ConnectedCharities", "yes" if organisation.has_connected_charities else "no")
        for charity in organisation.connected_charities:
            entry = _add(gasds, "Charity")
            _add(entry, "Name", charity.name)
            _add(entry, "HMRCref", charity.hmrc_ref)

        for gasds_claim in request.gasds_claims:
            entry = _add(gasds, "GASDSClaim")
            _add(entry, "Year", gasds_claim.year)
            _add(entry, "Amount", format_amount(gasds_claim.amount))

        uses_buildings = bool(request.community_buildings) or organisation.use_community_buildings
        _add(gasds, "CommBldgs", "yes" if uses_buildings else "no")
        for building in request.community_buildings:
            entry = _add(gasds, "Building")
            _add(entry, "BldgName", building.name)
            _add(entry, "Address", building.address)
            _add(entry, "Postcode", building.postcode)
            bldg_claim = _add(entry, "BldgClaim")
            _add(bldg_claim, "Year", building.year)
            _add(bldg_claim, "Amount", format_amount(building.amount))

        if request.gasds_adjustment.is_set:
            _add(gasds, "Adj", format_amount(request.gasds_adjustment.amount))


def build_claim_xml(request: ClaimRequest, donations: Iterable[DonationRecord]) -> tuple[str, DonationIdMap]:
    """Shortcut for ``ClaimXmlBuilder(request).build(donations)``."""
    return ClaimXmlBuilder(request).build(donations)
