"""Shared fixtures for the giftaid tests."""

from pathlib import Path

import pytest

from giftaid.govtalk import GovTalkResponse
from giftaid.models import (
    AgentAddress,
    AgentContact,
    AgentDetails,
    AuthorisedOfficial,
    ClaimingOrganisation,
    ClaimRequestBuilder,
    DonationRecord,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> bytes:
    return (FIXTURES_DIR / name).read_bytes()


class FakeTransport:
    """Records sent messages and replies with canned gateway responses."""

    def __init__(self, *fixture_names: str, status_code: int = 200):
        self.replies = [load_fixture(name) for name in fixture_names]
        self.status_code = status_code
        self.sent: list[tuple[str, str]] = []

    def send(self, message_xml: str, url: str) -> GovTalkResponse:
        self.sent.append((message_xml, url))
        return GovTalkResponse.from_content(self.replies.pop(0), status_code=self.status_code)


@pytest.fixture
def organisation():
    return ClaimingOrganisation(
        name="A charitable organisation",
        hmrc_ref="AB12345",
        regulator="CCEW",
        reg_no="1234567",
    )


@pytest.fixture
def official():
    return AuthorisedOfficial(
        title="Mr",
        forename="Rex",
        surname="Muck",
        phone="077 1234 5678",
        postcode="SW1A 1AA",
    )


@pytest.fixture
def agent():
    return AgentDetails(
        number="12345678901234",
        company="Agent & Co. Ltd",
        address=AgentAddress(lines=["1 High Street", "Anytown"], postcode="AB1 2CD"),
        contact=AgentContact(
            forename="Jane",
            surname="Smith",
            title="Ms",
            email="jane@example.com",
            telephone="01234 567890",
        ),
        reference="CLAIM-2021-06",
    )


@pytest.fixture
def single_request(organisation, official):
    return (
        ClaimRequestBuilder()
        .set_claim_to_date("2014-01-01")
        .set_claiming_organisation(organisation)
        .set_authorised_official(official)
        .build()
    )


@pytest.fixture
def multi_request(agent):
    return (
        ClaimRequestBuilder()
        .set_claim_to_date("2021-05-31")
        .set_agent(agent)
        .add_claiming_organisation(ClaimingOrganisation(name="Charity One", hmrc_ref="AB12345"))
        .add_claiming_organisation(ClaimingOrganisation(name="Charity Two", hmrc_ref="CD67890"))
        .build()
    )


@pytest.fixture
def donations():
    return [
        DonationRecord(donation_date="2013-04-07", title="Mr", first_name="Rick",
                       last_name="Astley", house_no="1", postcode="BA23 9CD",
                       amount="500.00", id="donation-1"),
        DonationRecord(donation_date="2013-04-15", first_name="Rick", last_name="Astley",
                       house_no="1", postcode="BA23 9CD", amount=10, id="donation-2"),
        DonationRecord(donation_date="2013-04-02", title="Mrs", first_name="Jane",
                       last_name="Doe", house_no="Flat 2", overseas=True,
                       amount="25.5", sponsored=True, id="donation-3"),
        DonationRecord(donation_date="2013-04-20", aggregation="Aggregated donation of 20 x £10",
                       amount="200.00", id="donation-4"),
        DonationRecord(donation_date="2013-05-01", first_name="Sam", last_name="Jones",
                       house_no="22", postcode="N1 9GU", amount="99.995", id="donation-5"),
    ]


@pytest.fixture
def multi_donations():
    return [
        DonationRecord(donation_date="2021-05-01", first_name="", last_name="",
                       house_no="1", postcode="AB1 2CD", amount="20.00",
                       id="some-uuid-1234", org_hmrc_ref="AB12345"),
        DonationRecord(donation_date="2021-05-02", first_name="Ann", last_name="Lee",
                       house_no="2", postcode="AB1 2CD", amount="0",
                       id="some-uuid-5678", org_hmrc_ref="AB12345"),
        DonationRecord(donation_date="2021-05-03", first_name="Bob", last_name="Ray",
                       house_no="3", postcode="CD6 7EF", amount="15.00",
                       id="some-uuid-9999", org_hmrc_ref="CD67890"),
    ]


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def gateway_response():
    def _load(name: str, status_code: int = 200) -> GovTalkResponse:
        return GovTalkResponse.from_content(load_fixture(name), status_code=status_code)
    return _load


@pytest.fixture
def fixture_bytes():
    return load_fixture
