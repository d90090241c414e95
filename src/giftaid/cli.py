"""Command-line interface for giftaid."""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .claim_builder import build_claim_xml
from .client import GiftAidClient
from .config import GatewaySettings
from .exceptions import GiftAidError
from .models import (
    MULTI_CLAIM_MESSAGE_CLASS,
    SINGLE_CLAIM_MESSAGE_CLASS,
    AgentAddress,
    AgentContact,
    AgentDetails,
    AuthorisedOfficial,
    ClaimingOrganisation,
    ClaimRequest,
    ClaimRequestBuilder,
    DonationRecord,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )
    # Quiet down requests library
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _organisation_from_dict(data: dict) -> ClaimingOrganisation:
    organisation = ClaimingOrganisation(
        name=data["name"],
        hmrc_ref=data["hmrc_ref"],
        regulator=data.get("regulator"),
        reg_no=data.get("reg_no"),
        has_connected_charities=bool(data.get("has_connected_charities", False)),
        use_community_buildings=bool(data.get("use_community_buildings", False)),
    )
    for charity in data.get("connected_charities", []):
        organisation.add_connected_charity(_organisation_from_dict(charity))
    return organisation


def _agent_from_dict(data: dict) -> AgentDetails:
    address = data.get("address", {})
    contact = data.get("contact")
    return AgentDetails(
        number=str(data["number"]),
        company=data["company"],
        address=AgentAddress(
            lines=list(address.get("lines", [])),
            postcode=address.get("postcode"),
            country=address.get("country") or "United Kingdom",
        ),
        contact=AgentContact(**contact) if contact else None,
        reference=data.get("reference"),
    )


def load_claim_config(config_path: Path) -> ClaimRequest:
    """Load claim settings from a JSON file.

    The file holds ``claim_to_date``, ``organisations``, and either
    ``authorised_official`` or ``agent``, plus optional adjustments,
    ``gasds_claims`` and ``community_buildings``.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    data = json.loads(config_path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Claim config must be a JSON object")

    builder = ClaimRequestBuilder()
    if data.get("claim_to_date"):
        builder.set_claim_to_date(data["claim_to_date"])
    for organisation in data.get("organisations", []):
        builder.add_claiming_organisation(_organisation_from_dict(organisation))
    if data.get("authorised_official"):
        builder.set_authorised_official(AuthorisedOfficial(**data["authorised_official"]))
    if data.get("agent"):
        builder.set_agent(_agent_from_dict(data["agent"]))

    for key, setter in (("ga_adjustment", builder.set_ga_adjustment),
                        ("gasds_adjustment", builder.set_gasds_adjustment)):
        adjustment = data.get(key)
        if adjustment:
            setter(adjustment.get("amount", 0), adjustment.get("reason", ""))

    for gasds_claim in data.get("gasds_claims", []):
        builder.add_gasds_claim(gasds_claim["year"], gasds_claim["amount"])
    for building in data.get("community_buildings", []):
        builder.add_community_building(
            building["name"], building["address"], building["postcode"],
            building["year"], building["amount"],
        )

    return builder.build()


def load_donations(donations_path: Path) -> list[DonationRecord]:
    """Load donations from a JSON list or a CSV file with a header row."""
    if not donations_path.exists():
        raise FileNotFoundError(f"Donations file not found: {donations_path}")

    if donations_path.suffix.lower() == ".csv":
        with open(donations_path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
    else:
        rows = json.loads(donations_path.read_text())
        if not isinstance(rows, list):
            raise ValueError("Donations JSON must be a list")

    return [DonationRecord.from_dict(row) for row in rows]


def write_json(data: dict, output_path: Optional[Path]):
    """Write a result mapping to a file, or stdout when no path is given."""
    text = json.dumps(data, indent=2)
    if output_path is None:
        print(text)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)


def _client(args) -> GiftAidClient:
    settings = GatewaySettings.from_env(args.env_file)
    if args.no_compress:
        settings.compress = False
    return GiftAidClient.from_settings(settings)


def cmd_build(args) -> int:
    request = load_claim_config(args.config)
    donations = load_donations(args.donations)
    claim_xml, id_map = build_claim_xml(request, donations)
    print(claim_xml, end="")
    logger.debug(f"Tracked donation ids: {id_map}")
    return 0


def cmd_submit(args) -> int:
    request = load_claim_config(args.config)
    donations = load_donations(args.donations)
    result = _client(args).submit(request, donations)
    if result is None:
        print("Error: claim not submitted, see log for missing details", file=sys.stderr)
        return 1

    write_json(result.to_dict(), args.output)
    if result.success:
        logger.info(f"[OK] Claim accepted, correlation id {result.correlation_id}")
        return 0
    logger.info(f"[!] Claim rejected; {len(result.donation_ids_with_errors)} donation(s) with errors")
    return 2


def cmd_poll(args) -> int:
    message_class = MULTI_CLAIM_MESSAGE_CLASS if args.multi else SINGLE_CLAIM_MESSAGE_CLASS
    result = _client(args).poll(args.correlation_id, poll_url=args.url, message_class=message_class)
    if result is None:
        print("Error: no usable poll response", file=sys.stderr)
        return 1
    write_json(result.to_dict(), args.output)
    return 2 if result.errors else 0


def cmd_list(args) -> int:
    request = load_claim_config(args.config)
    result = _client(args).request_claim_data(request)
    if result is None:
        print("Error: no claiming organisation configured", file=sys.stderr)
        return 1
    write_json(result.to_dict(), args.output)
    return 0 if result.success else 2


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="giftaid",
        description="Build and submit HMRC Gift Aid claims"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (errors only)"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to a .env file with GIFTAID_* gateway settings"
    )
    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Send claim data uncompressed"
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Write the JSON result here instead of stdout"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Print the claim XML without sending it")
    build_parser.add_argument("config", type=Path, help="Claim config (JSON)")
    build_parser.add_argument("donations", type=Path, help="Donations (JSON or CSV)")
    build_parser.set_defaults(func=cmd_build)

    submit_parser = subparsers.add_parser("submit", help="Submit a claim")
    submit_parser.add_argument("config", type=Path, help="Claim config (JSON)")
    submit_parser.add_argument("donations", type=Path, help="Donations (JSON or CSV)")
    submit_parser.set_defaults(func=cmd_submit)

    poll_parser = subparsers.add_parser("poll", help="Poll for a submission's outcome")
    poll_parser.add_argument("correlation_id", help="Correlation id from the acknowledgement")
    poll_parser.add_argument("--url", help="Poll endpoint from the acknowledgement")
    poll_parser.add_argument("--multi", action="store_true",
                             help="The submission was an agent multi-charity claim")
    poll_parser.set_defaults(func=cmd_poll)

    list_parser = subparsers.add_parser("list", help="Request claim data for an organisation")
    list_parser.add_argument("config", type=Path, help="Claim config (JSON)")
    list_parser.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)

    if args.quiet:
        logging.basicConfig(level=logging.ERROR)
    else:
        setup_logging(args.verbose)

    try:
        return args.func(args)
    except (FileNotFoundError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading input: {e}", file=sys.stderr)
        return 1
    except GiftAidError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
