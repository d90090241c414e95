"""
giftaid - Build and submit HMRC Gift Aid claims.

This package turns a list of charitable donations into an HMRC Charities
Online (R68) claim, sends it through the GovTalk gateway and maps any
validation errors back to the donations that caused them.
"""

import logging

from .claim_builder import ClaimXmlBuilder, build_claim_xml
from .client import GiftAidClient
from .config import GatewaySettings
from .exceptions import GatewayConnectionError, GiftAidError, IRmarkError
from .govtalk import GovTalkEnvelope, GovTalkResponse, GovTalkTransport
from .individual import Individual
from .irmark import apply_irmark, compute_irmark
from .models import (
    AgentAddress,
    AgentContact,
    AgentDetails,
    AuthorisedOfficial,
    ClaimDataResult,
    ClaimingOrganisation,
    ClaimRequest,
    ClaimRequestBuilder,
    DonationRecord,
    GatewayError,
    PollResult,
    ResponseErrors,
    SubmissionResult,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "AgentAddress",
    "AgentContact",
    "AgentDetails",
    "AuthorisedOfficial",
    "ClaimDataResult",
    "ClaimingOrganisation",
    "ClaimRequest",
    "ClaimRequestBuilder",
    "ClaimXmlBuilder",
    "DonationRecord",
    "GatewayConnectionError",
    "GatewayError",
    "GatewaySettings",
    "GiftAidClient",
    "GiftAidError",
    "GovTalkEnvelope",
    "GovTalkResponse",
    "GovTalkTransport",
    "IRmarkError",
    "Individual",
    "PollResult",
    "ResponseErrors",
    "SubmissionResult",
    "apply_irmark",
    "build_claim_xml",
    "compute_irmark",
]
