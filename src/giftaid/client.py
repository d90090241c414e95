"""HMRC Charities Online (Gift Aid) client.

Builds R68 claim submissions, sends them through the GovTalk transport
and turns the gateway's replies into result records.
"""

import base64
import gzip
import logging
import re
import uuid
from typing import Iterable, Optional

from lxml import etree

from .claim_builder import ClaimXmlBuilder
from .config import GatewaySettings
from .error_mapper import distinct_erroring_donations, map_response_errors
from .govtalk import GovTalkEnvelope, GovTalkResponse, GovTalkTransport
from .irmark import IRMARK_PLACEHOLDER, apply_irmark
from .models import (
    POLL_COMPLETE,
    POLL_ERROR,
    POLL_PENDING,
    SINGLE_CLAIM_MESSAGE_CLASS,
    AgentDetails,
    AuthorisedOfficial,
    ClaimDataResult,
    ClaimRequest,
    DonationIdMap,
    DonationRecord,
    PollResult,
    SubmissionResult,
)

LIVE_ENDPOINT = "https://transaction-engine.tax.service.gov.uk/submission"
TEST_ENDPOINT = "https://test-transaction-engine.tax.service.gov.uk/submission"

R68_NS = "http://www.govtalk.gov.uk/taxation/charities/r68/2"
TARGET_ORGANISATION = "IR"
DEFAULT_CURRENCY = "GBP"  # the only currency HMRC accepts


def _q(tag: str) -> str:
    return f"{{{R68_NS}}}{tag}"


def _add(parent: etree._Element, tag: str, text: Optional[str] = None) -> etree._Element:
    elem = etree.SubElement(parent, _q(tag))
    if text is not None:
        elem.text = str(text)
    return elem


class GiftAidClient:
    """Client for submitting Gift Aid claims to HMRC.

    One client holds the gateway credentials and product details; each
    call to :meth:`submit` takes a fresh :class:`ClaimRequest`.
    """

    def __init__(
        self,
        sender_id: str,
        password: str,
        vendor_id: str,
        software_name: str,
        software_version: str,
        test: bool = False,
        transport: Optional[GovTalkTransport] = None,
        custom_test_endpoint: Optional[str] = None,
        compress: bool = True,
        timeout: int = 60,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the client.

        Args:
            sender_id: Government Gateway sender id issued by HMRC
            password: Government Gateway password
            vendor_id: 4-digit HMRC vendor id, sent as the channel URI
            software_name: Name of the product submitting claims
            software_version: Version of the product submitting claims
            test: Send to the test gateway instead of live
            transport: Transport to send messages with; a GovTalkTransport by default
            custom_test_endpoint: Test endpoint override, e.g. the Local Test
                Service at http://localhost:5665/LTS/LTSPostServlet
            compress: Gzip the claim data inside the R68 body
            timeout: Request timeout in seconds for the default transport
            logger: Logger for skipped donations and refused submissions
        """
        if not re.fullmatch(r"\d{4}", vendor_id or ""):
            raise ValueError('"Product URI" should be a 4-digit HMRC vendor ID')

        self.sender_id = sender_id
        self.password = password
        self.vendor_id = vendor_id
        self.software_name = software_name
        self.software_version = software_version
        self.test = test
        self.compress = compress
        self.endpoint = self.get_endpoint(test, custom_test_endpoint)
        self.transport = transport or GovTalkTransport(timeout=timeout)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: GatewaySettings,
                      transport: Optional[GovTalkTransport] = None) -> "GiftAidClient":
        return cls(
            sender_id=settings.sender_id,
            password=settings.password,
            vendor_id=settings.vendor_id,
            software_name=settings.software_name,
            software_version=settings.software_version,
            test=settings.test,
            transport=transport,
            custom_test_endpoint=settings.test_endpoint,
            compress=settings.compress,
            timeout=settings.timeout,
        )

    @staticmethod
    def get_endpoint(test: bool = False, custom_test_endpoint: Optional[str] = None) -> str:
        """Pick the gateway URL; a custom endpoint only applies in test mode."""
        if test and custom_test_endpoint:
            return custom_test_endpoint
        return TEST_ENDPOINT if test else LIVE_ENDPOINT

    def submit(self, request: ClaimRequest,
               donations: Iterable[DonationRecord]) -> Optional[SubmissionResult]:
        """Submit a Gift Aid claim.

        Args:
            request: Claim settings (organisations, official or agent, adjustments)
            donations: Donations to claim, in order

        Returns:
            SubmissionResult, or None if the claim was not sent because
            required details are missing

        Raises:
            IRmarkError: If the assembled message cannot be marked
            GatewayConnectionError: If the gateway could not be reached
        """
        if request.claim_to_date is None:
            self.logger.error("Cannot proceed without claimToDate")
            return None

        if not request.is_agent_multi_claim:
            if request.authorised_official is None:
                self.logger.error("Cannot proceed without authorisedOfficial")
                return None
            if request.organisation() is None:
                self.logger.error("Cannot proceed without a claiming organisation")
                return None

        claim_data_xml, id_map = ClaimXmlBuilder(request, self.logger).build(donations)

        envelope = self._envelope(
            message_class=request.message_class,
            qualifier="request",
            function="submit",
            keys=[(request.char_id_key, request.char_id_value)],
            body=self.build_ir_envelope(request, claim_data_xml),
        )
        submission_request = apply_irmark(envelope.to_xml())

        response = self.transport.send(submission_request, self.endpoint)

        if response.ok and not response.has_errors:
            return SubmissionResult(
                success=True,
                correlation_id=response.correlation_id,
                endpoint=response.endpoint,
                interval=response.interval,
                donation_id_map=id_map,
                claim_data_xml=claim_data_xml,
                submission_request=submission_request,
            )

        errors = map_response_errors(response, id_map)
        donation_ids = distinct_erroring_donations(errors.business, id_map)
        if donation_ids:
            self.logger.info(f"Gateway reported errors for {len(donation_ids)} donation(s)")
        return SubmissionResult(
            success=False,
            errors=errors,
            donation_ids_with_errors=donation_ids,
            donation_id_map=id_map,
            claim_data_xml=claim_data_xml,
            submission_request=submission_request,
            submission_response=response.raw,
        )

    def request_claim_data(self, request: ClaimRequest) -> Optional[ClaimDataResult]:
        """Ask the gateway for the status of claims already sent.

        Returns:
            ClaimDataResult, or None if no organisation or agent is configured
        """
        if request.char_id_value is None:
            self.logger.error("Cannot request claim data without a claiming organisation")
            return None

        envelope = self._envelope(
            message_class=request.message_class,
            qualifier="request",
            function="list",
            keys=[(request.char_id_key, request.char_id_value)],
        )
        submission_request = envelope.to_xml()
        response = self.transport.send(submission_request, self.endpoint)

        if response.ok and not response.has_errors:
            return ClaimDataResult(
                success=True,
                endpoint=response.endpoint,
                interval=response.interval,
                status_records=self._status_records(response),
                submission_request=submission_request,
            )

        return ClaimDataResult(
            success=False,
            errors=response.errors,
            submission_request=submission_request,
        )

    def poll(
        self,
        correlation_id: str,
        poll_url: Optional[str] = None,
        message_class: str = SINGLE_CLAIM_MESSAGE_CLASS,
        donation_id_map: Optional[DonationIdMap] = None,
    ) -> Optional[PollResult]:
        """Poll the gateway for the outcome of an acknowledged submission.

        Args:
            correlation_id: Correlation id from the acknowledgement
            poll_url: Endpoint the acknowledgement said to poll; defaults to
                the client's endpoint
            message_class: Message class of the original submission
            donation_id_map: Id map from the submission, to trace errors back

        Returns:
            PollResult with status pending, complete or error, or None if
            the reply could not be interpreted
        """
        if not correlation_id:
            self.logger.error("Cannot poll without a correlation id")
            return None

        id_map = donation_id_map or {}
        envelope = self._envelope(
            message_class=message_class,
            qualifier="poll",
            function="submit",
            correlation_id=correlation_id,
            credentials=False,
        )
        submission_request = envelope.to_xml()
        response = self.transport.send(submission_request, poll_url or self.endpoint)

        if response.ok and not response.has_errors:
            if response.qualifier == "response":
                return PollResult(
                    status=POLL_COMPLETE,
                    correlation_id=correlation_id,
                    submission_request=submission_request,
                    submission_response=response.raw,
                )
            if response.qualifier == "acknowledgement":
                return PollResult(
                    status=POLL_PENDING,
                    correlation_id=response.correlation_id or correlation_id,
                    endpoint=response.endpoint,
                    interval=response.interval,
                    submission_request=submission_request,
                )
            self.logger.warning(f"Unexpected poll reply qualifier {response.qualifier!r}")
            return None

        if response.has_errors:
            errors = map_response_errors(response, id_map)
            return PollResult(
                status=POLL_ERROR,
                correlation_id=correlation_id,
                errors=errors,
                donation_ids_with_errors=distinct_erroring_donations(errors.business, id_map),
                submission_request=submission_request,
                submission_response=response.raw,
            )

        self.logger.warning(f"Poll for {correlation_id} failed with HTTP status {response.status_code}")
        return None

    def delete_request(
        self,
        correlation_id: str,
        message_class: str = SINGLE_CLAIM_MESSAGE_CLASS,
        url: Optional[str] = None,
    ) -> bool:
        """Remove a collected response from the gateway.

        Returns:
            True if the gateway confirmed the deletion
        """
        envelope = self._envelope(
            message_class=message_class,
            qualifier="request",
            function="delete",
            correlation_id=correlation_id,
            credentials=False,
        )
        response = self.transport.send(envelope.to_xml(), url or self.endpoint)
        if response.ok and not response.has_errors:
            return True
        self.logger.warning(f"Delete request for {correlation_id} was not accepted")
        return False

    def build_ir_envelope(self, request: ClaimRequest, claim_data_xml: str) -> etree._Element:
        """Assemble the IRenvelope body around already-built claim data.

        The IRmark element carries the placeholder token; it is replaced
        once the whole GovTalk message has been serialized.
        """
        agent = request.agent
        root = etree.Element(_q("IRenvelope"), nsmap={None: R68_NS})

        header = _add(root, "IRheader")
        keys = _add(header, "Keys")
        key = _add(keys, "Key", request.char_id_value)
        key.set("Type", request.char_id_key)
        _add(header, "PeriodEnd", request.claim_to_date.isoformat())
        if agent is not None:
            self._add_agent(header, agent)
        _add(header, "DefaultCurrency", DEFAULT_CURRENCY)
        irmark = _add(header, "IRmark", IRMARK_PLACEHOLDER)
        irmark.set("Type", "generic")
        _add(header, "Sender", "Agent" if agent is not None else "Individual")

        r68 = _add(root, "R68")
        if agent is not None:
            coll_agent = _add(r68, "CollAgent")
            _add(coll_agent, "AgentNo", agent.number)
            _add(coll_agent, "ClaimNo", agent.reference or uuid.uuid4().hex[:13])
        else:
            self._add_authorised_official(r68, request.authorised_official)

        _add(r68, "Declaration", "yes")

        if self.compress:
            compressed = gzip.compress(claim_data_xml.encode("utf-8"), compresslevel=9, mtime=0)
            part = _add(r68, "CompressedPart", base64.b64encode(compressed).decode("ascii"))
            part.set("Type", "gzip")
        elif claim_data_xml:
            wrapper = etree.fromstring(f'<R68 xmlns="{R68_NS}">{claim_data_xml}</R68>'.encode("utf-8"))
            for claim in list(wrapper):
                r68.append(claim)

        return root

    def _add_agent(self, header: etree._Element, agent: AgentDetails):
        agent_elem = _add(header, "Agent")
        _add(agent_elem, "Company", agent.company)

        address = _add(agent_elem, "Address")
        for line in agent.address.lines:
            _add(address, "Line", line)
        if agent.address.postcode:
            _add(address, "PostCode", agent.address.postcode)
        _add(address, "Country", agent.address.country)

        contact = agent.contact
        if contact is not None:
            contact_elem = _add(agent_elem, "Contact")
            name = _add(contact_elem, "Name")
            if contact.title:
                _add(name, "Ttl", contact.title)
            _add(name, "Fore", contact.forename)
            _add(name, "Sur", contact.surname)
            if contact.email:
                _add(contact_elem, "Email", contact.email)
            if contact.telephone:
                _add(_add(contact_elem, "Telephone"), "Number", contact.telephone)
            if contact.fax:
                _add(_add(contact_elem, "Fax"), "Number", contact.fax)

    def _add_authorised_official(self, r68: etree._Element, official: AuthorisedOfficial):
        auth_official = _add(r68, "AuthOfficial")
        name = _add(auth_official, "OffName")
        if official.title:
            _add(name, "Ttl", official.title)
        _add(name, "Fore", official.forename)
        _add(name, "Sur", official.surname)
        off_id = _add(auth_official, "OffID")
        _add(off_id, "Postcode", official.postcode)
        _add(auth_official, "Phone", official.phone)

    def _envelope(
        self,
        message_class: str,
        qualifier: str,
        function: str,
        correlation_id: Optional[str] = None,
        keys: Optional[list[tuple[str, str]]] = None,
        body: Optional[etree._Element] = None,
        credentials: bool = True,
    ) -> GovTalkEnvelope:
        return GovTalkEnvelope(
            message_class=message_class,
            qualifier=qualifier,
            function=function,
            sender_id=self.sender_id if credentials else None,
            password=self.password if credentials else None,
            correlation_id=correlation_id,
            gateway_test=self.test,
            keys=keys or [],
            target_organisation=TARGET_ORGANISATION,
            channel_uri=self.vendor_id,
            channel_product=self.software_name,
            channel_version=self.software_version,
            body=body,
        )

    @staticmethod
    def _status_records(response: GovTalkResponse) -> list[dict]:
        body = response.body
        if body is None:
            return []
        records = []
        for node in body.findall("{*}StatusReport/{*}StatusRecord"):
            records.append({
                etree.QName(child).localname: (child.text or "").strip()
                for child in node if isinstance(child.tag, str)
            })
        return records
