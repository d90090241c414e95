"""GovTalk envelope construction and HTTP transport.

Every message exchanged with the HMRC Transaction Engine is wrapped in a
``GovTalkMessage`` envelope. This module builds that envelope around a
message body, posts it, and parses the reply into a :class:`GovTalkResponse`.
One POST per call; nothing is retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import requests
from lxml import etree

from .exceptions import GatewayConnectionError
from .models import GatewayError, ResponseErrors

logger = logging.getLogger(__name__)

GOVTALK_NS = "http://www.govtalk.gov.uk/CM/envelope"
ENVELOPE_VERSION = "2.0"
USER_AGENT = "giftaid/0.1.0"

_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def _q(tag: str) -> str:
    return f"{{{GOVTALK_NS}}}{tag}"


def _add(parent: etree._Element, tag: str, text: Optional[str] = None) -> etree._Element:
    elem = etree.SubElement(parent, _q(tag))
    if text is not None:
        elem.text = str(text)
    return elem


@dataclass
class GovTalkEnvelope:
    """Header fields and body of one outgoing GovTalk message.

    ``sender_id`` may be None for messages that carry no credentials,
    such as polls and deletes.
    """
    message_class: str
    qualifier: str
    function: str
    sender_id: Optional[str] = None
    password: Optional[str] = None
    correlation_id: Optional[str] = None
    transformation: str = "XML"
    gateway_test: bool = False
    keys: list[tuple[str, str]] = field(default_factory=list)
    target_organisation: Optional[str] = None
    channel_uri: Optional[str] = None
    channel_product: Optional[str] = None
    channel_version: Optional[str] = None
    body: Optional[etree._Element] = None
    authentication_method: str = "clear"

    def to_element(self) -> etree._Element:
        root = etree.Element(_q("GovTalkMessage"), nsmap={None: GOVTALK_NS})
        _add(root, "EnvelopeVersion", ENVELOPE_VERSION)

        header = _add(root, "Header")
        details = _add(header, "MessageDetails")
        _add(details, "Class", self.message_class)
        _add(details, "Qualifier", self.qualifier)
        _add(details, "Function", self.function)
        _add(details, "CorrelationID", self.correlation_id or "")
        _add(details, "Transformation", self.transformation)
        _add(details, "GatewayTest", "1" if self.gateway_test else "0")

        if self.sender_id is not None:
            sender = _add(header, "SenderDetails")
            id_auth = _add(sender, "IDAuthentication")
            _add(id_auth, "SenderID", self.sender_id)
            auth = _add(id_auth, "Authentication")
            _add(auth, "Method", self.authentication_method)
            _add(auth, "Role", "principal")
            _add(auth, "Value", self.password or "")

        govtalk_details = _add(root, "GovTalkDetails")
        keys = _add(govtalk_details, "Keys")
        for key_type, key_value in self.keys:
            key = _add(keys, "Key", key_value)
            key.set("Type", key_type)
        if self.target_organisation:
            target = _add(govtalk_details, "TargetDetails")
            _add(target, "Organisation", self.target_organisation)
        if self.channel_uri:
            routing = _add(govtalk_details, "ChannelRouting")
            channel = _add(routing, "Channel")
            _add(channel, "URI", self.channel_uri)
            _add(channel, "Product", self.channel_product or "")
            _add(channel, "Version", self.channel_version or "")

        body = _add(root, "Body")
        if self.body is not None:
            body.append(self.body)
        return root

    def to_xml(self) -> str:
        """Serialize the message, XML declaration included."""
        return etree.tostring(
            self.to_element(), xml_declaration=True, encoding="UTF-8", pretty_print=True
        ).decode("utf-8")


class GovTalkResponse:
    """A parsed reply from the gateway."""

    NAMESPACES = {"gt": GOVTALK_NS}

    def __init__(self, raw: str, status_code: int = 200, root: Optional[etree._Element] = None):
        self.raw = raw
        self.status_code = status_code
        self.root = root

    @classmethod
    def from_content(cls, content: bytes, status_code: int = 200) -> "GovTalkResponse":
        """Parse raw response bytes; unparseable content leaves ``root`` as None."""
        raw = content.decode("utf-8", errors="replace")
        try:
            root = etree.fromstring(content, _XML_PARSER)
        except etree.XMLSyntaxError as e:
            logger.error(f"Failed to parse gateway response: {e}")
            root = None
        return cls(raw, status_code=status_code, root=root)

    @property
    def ok(self) -> bool:
        """The HTTP exchange worked and produced a GovTalk message."""
        return 200 <= self.status_code < 300 and self.root is not None

    @property
    def qualifier(self) -> Optional[str]:
        return self._get_text("gt:Header/gt:MessageDetails/gt:Qualifier")

    @property
    def function(self) -> Optional[str]:
        return self._get_text("gt:Header/gt:MessageDetails/gt:Function")

    @property
    def correlation_id(self) -> Optional[str]:
        return self._get_text("gt:Header/gt:MessageDetails/gt:CorrelationID")

    @property
    def endpoint(self) -> Optional[str]:
        return self._get_text("gt:Header/gt:MessageDetails/gt:ResponseEndPoint")

    @property
    def interval(self) -> Optional[int]:
        elem = self._find("gt:Header/gt:MessageDetails/gt:ResponseEndPoint")
        if elem is None:
            return None
        try:
            return int(elem.get("PollInterval", ""))
        except ValueError:
            return None

    @property
    def body(self) -> Optional[etree._Element]:
        return self._find("gt:Body")

    @property
    def errors(self) -> ResponseErrors:
        """Errors from the envelope's GovTalkErrors block, grouped by type.

        A fresh object is returned on every access.
        """
        errors = ResponseErrors()
        for error in self._findall("gt:GovTalkDetails/gt:GovTalkErrors/gt:Error"):
            errors.add(
                self._get_text("gt:Type", error) or "fatal",
                GatewayError(
                    number=self._get_text("gt:Number", error) or "",
                    text=self._get_text("gt:Text", error) or "",
                    location=self._get_text("gt:Location", error),
                ),
            )
        return errors

    @property
    def has_errors(self) -> bool:
        if self.root is None:
            return False
        if self._findall("gt:GovTalkDetails/gt:GovTalkErrors/gt:Error"):
            return True
        return self.qualifier == "error"

    def _find(self, xpath: str, elem: Optional[etree._Element] = None) -> Optional[etree._Element]:
        base = self.root if elem is None else elem
        if base is None:
            return None
        return base.find(xpath, self.NAMESPACES)

    def _findall(self, xpath: str) -> list:
        if self.root is None:
            return []
        return self.root.findall(xpath, self.NAMESPACES)

    def _get_text(self, xpath: str, elem: Optional[etree._Element] = None) -> Optional[str]:
        """Get stripped text content from an xpath."""
        result = self._find(xpath, elem)
        if result is not None and result.text:
            return result.text.strip()
        return None


class GovTalkTransport:
    """Posts GovTalk messages over HTTP."""

    def __init__(self, timeout: int = 60, session: Optional[requests.Session] = None):
        """Initialize the transport.

        Args:
            timeout: Request timeout in seconds
            session: Session to reuse; a new one is created if omitted
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": USER_AGENT,
            "Content-Type": "text/xml; charset=utf-8",
        })

    def send(self, message_xml: str, url: str) -> GovTalkResponse:
        """Post one message and parse the reply.

        Raises:
            GatewayConnectionError: If no HTTP response was received
        """
        logger.debug(f"Posting GovTalk message to {url}")
        try:
            resp = self.session.post(url, data=message_xml.encode("utf-8"), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error sending GovTalk message to {url}: {e}")
            raise GatewayConnectionError(str(e)) from e

        if resp.status_code != 200:
            logger.warning(f"Gateway returned status {resp.status_code} for {url}")

        return GovTalkResponse.from_content(resp.content, status_code=resp.status_code)
