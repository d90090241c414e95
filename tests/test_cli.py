"""Tests for the command-line interface."""

import json

import pytest

from giftaid import cli
from giftaid.client import GiftAidClient

CLAIM_CONFIG = {
    "claim_to_date": "2014-01-01",
    "organisations": [
        {"name": "A charitable organisation", "hmrc_ref": "AB12345",
         "regulator": "CCEW", "reg_no": "1234567"},
    ],
    "authorised_official": {
        "title": "Mr", "forename": "Rex", "surname": "Muck",
        "phone": "077 1234 5678", "postcode": "SW1A 1AA",
    },
    "ga_adjustment": {"amount": "10.00", "reason": "Refunded donation"},
}

DONATIONS_CSV = (
    "donation_date,amount,title,first_name,last_name,house_no,postcode,overseas,aggregation,id\n"
    "2013-04-07,500.00,Mr,Rick,Astley,1,BA23 9CD,,,donation-1\n"
    "2013-04-20,200.00,,,,,,,Aggregated donation of 20 x £10,donation-2\n"
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "claim.json"
    path.write_text(json.dumps(CLAIM_CONFIG))
    return path


@pytest.fixture
def donations_file(tmp_path):
    path = tmp_path / "donations.csv"
    path.write_text(DONATIONS_CSV, encoding="utf-8")
    return path


@pytest.fixture
def fake_client(monkeypatch, make_transport):
    def _install(*fixture_names):
        transport = make_transport(*fixture_names)
        client = GiftAidClient("323412300001", "testing1", "1234", "giftaid", "0.1.0",
                               test=True, transport=transport)
        monkeypatch.setattr(cli, "_client", lambda args: client)
        return transport
    return _install


class TestLoaders:
    def test_load_claim_config(self, config_file):
        request = cli.load_claim_config(config_file)
        assert request.organisation().hmrc_ref == "AB12345"
        assert request.authorised_official.surname == "Muck"
        assert request.ga_adjustment.is_set

    def test_load_agent_config(self, tmp_path):
        path = tmp_path / "agent.json"
        path.write_text(json.dumps({
            "claim_to_date": "2021-05-31",
            "organisations": [{"name": "Charity One", "hmrc_ref": "AB12345"}],
            "agent": {
                "number": "12345678901234",
                "company": "Agent Ltd",
                "address": {"lines": ["1 High Street"], "postcode": "AB1 2CD"},
                "contact": {"forename": "Jane", "surname": "Smith"},
            },
        }))
        request = cli.load_claim_config(path)
        assert request.is_agent_multi_claim
        assert request.agent.address.country == "United Kingdom"

    def test_load_donations_csv(self, donations_file):
        donations = cli.load_donations(donations_file)
        assert len(donations) == 2
        assert donations[0].postcode == "BA23 9CD"
        assert donations[1].is_aggregated

    def test_load_donations_json(self, tmp_path):
        path = tmp_path / "donations.json"
        path.write_text(json.dumps([{"donation_date": "2013-04-07", "amount": 5, "id": "x"}]))
        assert cli.load_donations(path)[0].id == "x"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            cli.load_claim_config(tmp_path / "nope.json")


class TestMain:
    def test_build(self, config_file, donations_file, capsys):
        assert cli.main(["build", str(config_file), str(donations_file)]) == 0
        out = capsys.readouterr().out
        assert "<HMRCref>AB12345</HMRCref>" in out
        assert "<AggDonation>Aggregated donation of 20 x £10</AggDonation>" in out
        assert "<OtherInfo>Refunded donation</OtherInfo>" in out

    def test_submit_success(self, config_file, donations_file, fake_client, tmp_path):
        fake_client("submit_ack_response.xml")
        output = tmp_path / "out" / "result.json"
        code = cli.main(["-o", str(output), "submit", str(config_file), str(donations_file)])
        assert code == 0
        result = json.loads(output.read_text())
        assert result["correlationid"] == "A19FA1A31BCB42D887EA323292AACD88"
        assert result["interval"] == 10

    def test_submit_rejected(self, config_file, donations_file, fake_client, capsys):
        fake_client("submit_auth_failure_response.xml")
        assert cli.main(["submit", str(config_file), str(donations_file)]) == 2
        result = json.loads(capsys.readouterr().out)
        assert result["errors"]["fatal"][0]["number"] == "1046"

    def test_poll(self, fake_client, capsys):
        transport = fake_client("poll_ack_response.xml")
        url = "https://test-transaction-engine.tax.service.gov.uk/poll"
        assert cli.main(["poll", "A19FA1A31BCB42D887EA323292AACD88", "--url", url]) == 0
        assert transport.sent[0][1] == url
        assert json.loads(capsys.readouterr().out)["interval"] == 10
        assert "<Class>HMRC-CHAR-CLM</Class>" in transport.sent[0][0]

    def test_poll_multi_claim(self, fake_client):
        transport = fake_client("poll_ack_response.xml")
        assert cli.main(["poll", "9072983591062099772", "--multi"]) == 0
        message = transport.sent[0][0]
        assert "<Class>HMRC-CHAR-CLM-MULTI</Class>" in message
        assert "<CorrelationID>9072983591062099772</CorrelationID>" in message

    def test_list(self, config_file, fake_client, capsys):
        fake_client("claim_data_response.xml")
        assert cli.main(["list", str(config_file)]) == 0
        assert len(json.loads(capsys.readouterr().out)["statusRecords"]) == 2

    def test_bad_input(self, tmp_path, donations_file, capsys):
        assert cli.main(["build", str(tmp_path / "missing.json"), str(donations_file)]) == 1
        assert "Error loading input" in capsys.readouterr().err
