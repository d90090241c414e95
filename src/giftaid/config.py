"""Gateway settings loaded from the environment (and an optional .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_TIMEOUT = 60
DEFAULT_SOFTWARE_NAME = "giftaid"
DEFAULT_SOFTWARE_VERSION = "0.1.0"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class GatewaySettings:
    """Credentials and product details for talking to the HMRC gateway."""
    sender_id: str
    password: str
    vendor_id: str
    software_name: str = DEFAULT_SOFTWARE_NAME
    software_version: str = DEFAULT_SOFTWARE_VERSION
    test: bool = False
    test_endpoint: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT
    compress: bool = True

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "GatewaySettings":
        """Read GIFTAID_* variables, loading a .env file first if present.

        Raises:
            ValueError: If credentials are missing or the timeout is not a number
        """
        load_dotenv(env_file)

        sender_id = os.getenv("GIFTAID_SENDER_ID", "")
        password = os.getenv("GIFTAID_PASSWORD", "")
        vendor_id = os.getenv("GIFTAID_VENDOR_ID", "")
        missing = [
            name for name, value in (
                ("GIFTAID_SENDER_ID", sender_id),
                ("GIFTAID_PASSWORD", password),
                ("GIFTAID_VENDOR_ID", vendor_id),
            ) if not value
        ]
        if missing:
            raise ValueError(f"Missing gateway settings: {', '.join(missing)}")

        timeout_text = os.getenv("GIFTAID_TIMEOUT", str(DEFAULT_TIMEOUT))
        try:
            timeout = int(timeout_text)
        except ValueError:
            raise ValueError(f"GIFTAID_TIMEOUT must be a whole number of seconds, got {timeout_text!r}")

        return cls(
            sender_id=sender_id,
            password=password,
            vendor_id=vendor_id,
            software_name=os.getenv("GIFTAID_SOFTWARE_NAME", DEFAULT_SOFTWARE_NAME),
            software_version=os.getenv("GIFTAID_SOFTWARE_VERSION", DEFAULT_SOFTWARE_VERSION),
            test=_env_flag("GIFTAID_TEST", False),
            test_endpoint=os.getenv("GIFTAID_TEST_ENDPOINT") or None,
            timeout=timeout,
            compress=_env_flag("GIFTAID_COMPRESS", True),
        )
