"""Data models for the giftaid package."""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

logger = logging.getLogger(__name__)

Amount = Union[Decimal, float, int, str]

SINGLE_CLAIM_MESSAGE_CLASS = "HMRC-CHAR-CLM"
MULTI_CLAIM_MESSAGE_CLASS = "HMRC-CHAR-CLM-MULTI"

STANDARD_REGULATORS = ("CCEW", "CCNI", "OSCR")

# Characters HMRC accepts in agent company names and claim references
AGENT_TEXT_PATTERN = re.compile(r"[A-Za-z0-9 &'()*,\-./]*")
AGENT_NUMBER_PATTERN = re.compile(r"\d{14}")

# claim ordinal -> GAD ordinal -> caller donation id, both 1-indexed
DonationIdMap = dict[int, dict[int, str]]


def to_decimal(value: Optional[Amount]) -> Decimal:
    """Convert a caller-supplied amount to Decimal (None counts as zero)."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def format_amount(value: Optional[Amount]) -> str:
    """Render an amount as HMRC expects it: two decimals, no separators."""
    quantized = to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{quantized:f}"


def to_date(value: Union[date, str, None]) -> Optional[date]:
    """Accept a date or a YYYY-MM-DD string."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


@dataclass
class DonationRecord:
    """One donation as supplied by the caller.

    Either ``aggregation`` is set, or the donor's name, house and the
    donation date/amount are. A donor without a postcode must be overseas.
    """
    donation_date: Optional[date] = None
    amount: Decimal = Decimal("0")
    title: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    house_no: str = ""
    postcode: Optional[str] = None
    overseas: bool = False
    sponsored: bool = False
    aggregation: Optional[str] = None
    id: Optional[str] = None
    org_hmrc_ref: Optional[str] = None

    def __post_init__(self):
        self.donation_date = to_date(self.donation_date)
        self.amount = to_decimal(self.amount)

    @property
    def is_aggregated(self) -> bool:
        return bool(self.aggregation)

    @classmethod
    def from_dict(cls, data: dict) -> "DonationRecord":
        """Build a record from a plain mapping (JSON or CSV row)."""
        return cls(
            donation_date=data.get("donation_date"),
            amount=data.get("amount"),
            title=data.get("title") or None,
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
            house_no=data.get("house_no") or "",
            postcode=data.get("postcode") or None,
            overseas=_to_bool(data.get("overseas")),
            sponsored=_to_bool(data.get("sponsored")),
            aggregation=data.get("aggregation") or None,
            id=data.get("id") or None,
            org_hmrc_ref=data.get("org_hmrc_ref") or None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        d = asdict(self)
        d["donation_date"] = self.donation_date.isoformat() if self.donation_date else None
        d["amount"] = format_amount(self.amount)
        return d


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


@dataclass
class ClaimingOrganisation:
    """A charity claiming Gift Aid, keyed on its HMRC reference.

    ``regulator`` is one of CCEW, CCNI or OSCR, free text naming another
    regulator, or None for an exempt charity.
    """
    name: str
    hmrc_ref: str
    regulator: Optional[str] = None
    reg_no: Optional[str] = None
    has_connected_charities: bool = False
    connected_charities: list["ClaimingOrganisation"] = field(default_factory=list)
    use_community_buildings: bool = False

    def has_standard_regulator(self) -> bool:
        return self.regulator in STANDARD_REGULATORS

    def add_connected_charity(self, charity: "ClaimingOrganisation"):
        self.connected_charities.append(charity)


@dataclass
class AuthorisedOfficial:
    """The person signing the declaration for a single-charity claim."""
    forename: str
    surname: str
    phone: str
    postcode: str
    title: Optional[str] = None


@dataclass
class AgentAddress:
    lines: list[str] = field(default_factory=list)
    postcode: Optional[str] = None
    country: str = "United Kingdom"


@dataclass
class AgentContact:
    forename: str
    surname: str
    title: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    fax: Optional[str] = None


@dataclass
class AgentDetails:
    """A collecting agent submitting for several charities at once.

    Setting an agent switches the submission to a multi-claim.
    """
    number: str
    company: str
    address: AgentAddress = field(default_factory=AgentAddress)
    contact: Optional[AgentContact] = None
    reference: Optional[str] = None

    def __post_init__(self):
        if not AGENT_NUMBER_PATTERN.fullmatch(self.number or ""):
            raise ValueError(f"Agent number must be 14 digits, got {self.number!r}")
        if not AGENT_TEXT_PATTERN.fullmatch(self.company or ""):
            raise ValueError(f"Agent company contains disallowed characters: {self.company!r}")
        if not self.address.country:
            self.address.country = "United Kingdom"
        if self.reference is not None and not AGENT_TEXT_PATTERN.fullmatch(self.reference):
            logger.warning(f"Ignoring agent reference with disallowed characters: {self.reference!r}")
            self.reference = None


@dataclass(frozen=True)
class Adjustment:
    """A correction to a previous claim, e.g. refunded donations."""
    amount: Decimal = Decimal("0")
    reason: str = ""

    @property
    def is_set(self) -> bool:
        return to_decimal(self.amount) != 0


@dataclass(frozen=True)
class GasdsClaim:
    """Small donations scheme top-up for one tax year."""
    year: str
    amount: Decimal


@dataclass(frozen=True)
class CommunityBuilding:
    name: str
    address: str
    postcode: str
    year: str
    amount: Decimal


@dataclass(frozen=True)
class ClaimRequest:
    """Everything about a claim except the donations themselves.

    Build one with :class:`ClaimRequestBuilder`.
    """
    claim_to_date: Optional[date] = None
    organisations: dict[str, ClaimingOrganisation] = field(default_factory=dict)
    authorised_official: Optional[AuthorisedOfficial] = None
    agent: Optional[AgentDetails] = None
    ga_adjustment: Adjustment = Adjustment()
    gasds_adjustment: Adjustment = Adjustment()
    gasds_claims: tuple[GasdsClaim, ...] = ()
    community_buildings: tuple[CommunityBuilding, ...] = ()

    @property
    def is_agent_multi_claim(self) -> bool:
        return self.agent is not None

    @property
    def message_class(self) -> str:
        return MULTI_CLAIM_MESSAGE_CLASS if self.is_agent_multi_claim else SINGLE_CLAIM_MESSAGE_CLASS

    @property
    def char_id_key(self) -> str:
        return "AGENTCHARID" if self.is_agent_multi_claim else "CHARID"

    @property
    def char_id_value(self) -> Optional[str]:
        if self.is_agent_multi_claim:
            return self.agent.number
        organisation = self.organisation()
        return organisation.hmrc_ref if organisation else None

    def organisation(self, hmrc_ref: Optional[str] = None) -> Optional[ClaimingOrganisation]:
        """Look up an organisation, or the first configured one when no ref is given."""
        if hmrc_ref is None:
            return next(iter(self.organisations.values()), None)
        return self.organisations.get(hmrc_ref)


class ClaimRequestBuilder:
    """Accumulates claim settings and repeating sections into a ClaimRequest."""

    def __init__(self):
        self._claim_to_date: Optional[date] = None
        self._organisations: dict[str, ClaimingOrganisation] = {}
        self._authorised_official: Optional[AuthorisedOfficial] = None
        self._agent: Optional[AgentDetails] = None
        self._ga_adjustment = Adjustment()
        self._gasds_adjustment = Adjustment()
        self._gasds_claims: list[GasdsClaim] = []
        self._community_buildings: list[CommunityBuilding] = []

    def set_claim_to_date(self, value: Union[date, str]) -> "ClaimRequestBuilder":
        self._claim_to_date = to_date(value)
        return self

    def set_claiming_organisation(self, organisation: ClaimingOrganisation) -> "ClaimRequestBuilder":
        """Replace any configured organisations with this one."""
        self._organisations = {organisation.hmrc_ref: organisation}
        return self

    def add_claiming_organisation(self, organisation: ClaimingOrganisation) -> "ClaimRequestBuilder":
        self._organisations[organisation.hmrc_ref] = organisation
        return self

    def set_authorised_official(self, official: AuthorisedOfficial) -> "ClaimRequestBuilder":
        self._authorised_official = official
        return self

    def set_agent(self, agent: AgentDetails) -> "ClaimRequestBuilder":
        self._agent = agent
        return self

    def set_ga_adjustment(self, amount: Amount, reason: str) -> "ClaimRequestBuilder":
        self._ga_adjustment = Adjustment(to_decimal(amount), reason)
        return self

    def set_gasds_adjustment(self, amount: Amount, reason: str) -> "ClaimRequestBuilder":
        self._gasds_adjustment = Adjustment(to_decimal(amount), reason)
        return self

    def add_gasds_claim(self, year, amount: Amount) -> "ClaimRequestBuilder":
        self._gasds_claims.append(GasdsClaim(str(year), to_decimal(amount)))
        return self

    def add_community_building(self, name: str, address: str, postcode: str,
                               year, amount: Amount) -> "ClaimRequestBuilder":
        self._community_buildings.append(
            CommunityBuilding(name, address, postcode, str(year), to_decimal(amount))
        )
        return self

    def build(self) -> ClaimRequest:
        return ClaimRequest(
            claim_to_date=self._claim_to_date,
            organisations=dict(self._organisations),
            authorised_official=self._authorised_official,
            agent=self._agent,
            ga_adjustment=self._ga_adjustment,
            gasds_adjustment=self._gasds_adjustment,
            gasds_claims=tuple(self._gasds_claims),
            community_buildings=tuple(self._community_buildings),
        )


@dataclass
class GatewayError:
    """One error reported by the gateway."""
    number: str
    text: str
    location: Optional[str] = None
    donation_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


ERROR_CATEGORIES = ("fatal", "recoverable", "business", "warning")


@dataclass
class ResponseErrors:
    """Gateway errors grouped by the type the gateway assigned them."""
    fatal: list[GatewayError] = field(default_factory=list)
    recoverable: list[GatewayError] = field(default_factory=list)
    business: list[GatewayError] = field(default_factory=list)
    warning: list[GatewayError] = field(default_factory=list)

    def add(self, category: str, error: GatewayError):
        if category not in ERROR_CATEGORIES:
            logger.debug(f"Unknown error type {category!r}, filing as fatal")
            category = "fatal"
        getattr(self, category).append(error)

    def has_errors(self) -> bool:
        return any(getattr(self, category) for category in ERROR_CATEGORIES)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            category: [e.to_dict() for e in getattr(self, category)]
            for category in ERROR_CATEGORIES
        }


@dataclass
class SubmissionResult:
    """Outcome of a claim submission.

    On success the gateway has acknowledged the claim and hands back a
    correlation id plus where and how often to poll. On failure ``errors``
    holds what the gateway reported.
    """
    success: bool
    correlation_id: Optional[str] = None
    endpoint: Optional[str] = None
    interval: Optional[int] = None
    errors: Optional[ResponseErrors] = None
    donation_ids_with_errors: list[str] = field(default_factory=list)
    donation_id_map: DonationIdMap = field(default_factory=dict)
    claim_data_xml: str = ""
    submission_request: str = ""
    submission_response: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to the mapping callers of the gateway client expect."""
        if self.success:
            d = {
                "endpoint": self.endpoint,
                "interval": self.interval,
                "correlationid": self.correlation_id,
            }
        else:
            d = {
                "errors": (self.errors or ResponseErrors()).to_dict(),
                "donation_ids_with_errors": list(self.donation_ids_with_errors),
                "submission_response": self.submission_response,
            }
        d["claim_data_xml"] = self.claim_data_xml
        d["submission_request"] = self.submission_request
        return d


POLL_PENDING = "pending"
POLL_COMPLETE = "complete"
POLL_ERROR = "error"


@dataclass
class PollResult:
    """Outcome of polling the gateway for a submission's final response."""
    status: str
    correlation_id: Optional[str] = None
    endpoint: Optional[str] = None
    interval: Optional[int] = None
    errors: Optional[ResponseErrors] = None
    donation_ids_with_errors: list[str] = field(default_factory=list)
    submission_request: str = ""
    submission_response: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == POLL_PENDING

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        if self.status == POLL_ERROR:
            return {
                "errors": (self.errors or ResponseErrors()).to_dict(),
                "donation_ids_with_errors": list(self.donation_ids_with_errors),
                "submission_response": self.submission_response,
            }
        d = {"correlationid": self.correlation_id, "submission_request": self.submission_request}
        if self.status == POLL_PENDING:
            d["endpoint"] = self.endpoint
            d["interval"] = self.interval
        else:
            d["submission_response"] = self.submission_response
        return d


@dataclass
class ClaimDataResult:
    """Status records of claims previously sent for an organisation."""
    success: bool
    endpoint: Optional[str] = None
    interval: Optional[int] = None
    status_records: list[dict] = field(default_factory=list)
    errors: Optional[ResponseErrors] = None
    submission_request: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        if self.success:
            d = {
                "endpoint": self.endpoint,
                "interval": self.interval,
                "statusRecords": self.status_records,
            }
        else:
            d = {"errors": (self.errors or ResponseErrors()).to_dict()}
        d["submission_request"] = self.submission_request
        return d
