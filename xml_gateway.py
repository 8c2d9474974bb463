import logging
import re
import ssl
from typing import Any, Dict, List, NamedTuple, Optional, Union

import requests
from lxml import etree
from pydantic import BaseModel
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10.0
SOAP_HEADERS = {"Content-Type": "text/xml;charset=UTF-8"}
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
REQUIRED_HEADER_FIELDS = ("SessionID", "ServiceName", "RequestTime")

# OpenSSL X509_V_ERR_SELF_SIGNED_CERT_IN_CHAIN, X509_V_ERR_UNABLE_TO_VERIFY_LEAF_SIGNATURE
CERTIFICATE_VERIFY_CODES = frozenset({19, 21})

ATTRIBUTES_KEY = "@"
TEXT_KEY = "#"
PARSED_ATTRIBUTES_KEY = "$"
PARSED_TEXT_KEY = "_"

_SELF_CLOSING = re.compile(r"<([\w:.-]+)([^<>]*?)/>")


# ----------------- Errors -----------------
class GatewayError(Exception):
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)


class ConversionError(GatewayError):
    pass


class ParseError(GatewayError):
    pass


class ValidationError(GatewayError):
    def __init__(self, missing_fields: List[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Missing required header fields: {', '.join(self.missing_fields)}")


class CertificateError(GatewayError):
    status_code = 502
    error = "Certificate validation failed"


class UpstreamError(GatewayError):
    status_code = 502
    error = "API service call failed"


class EmptyResponseError(GatewayError):
    status_code = 502
    error = "Empty response from API service"


# ----------------- JSON -> XML -----------------
class EncodedEnvelope(NamedTuple):
    header: Any
    root_tag: str
    xml: str


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append(parent, tag: str, value: Any, seen: set) -> None:
    if isinstance(value, (list, tuple)):
        if id(value) in seen:
            raise ValueError(f"Circular reference at <{tag}>")
        seen.add(id(value))
        for item in value:
            _append(parent, tag, item, seen)
        seen.discard(id(value))
        return
    _fill(etree.SubElement(parent, tag), value, seen)


def _fill(element, value: Any, seen: set) -> None:
    if value is None:
        return
    if isinstance(value, dict):
        if id(value) in seen:
            raise ValueError(f"Circular reference at <{element.tag}>")
        seen.add(id(value))
        for key, child in value.items():
            if key == ATTRIBUTES_KEY and isinstance(child, dict):
                for name, attr in child.items():
                    element.set(name, _text(attr))
            elif key == TEXT_KEY:
                element.text = _text(child)
            else:
                _append(element, str(key), child, seen)
        seen.discard(id(value))
        return
    if isinstance(value, (list, tuple)):
        raise ValueError(f"Sequence has no element name under <{element.tag}>")
    element.text = _text(value)


def _expand_empty_elements(xml: str) -> str:
    # <tag .../> becomes <tag ...></tag>
    return _SELF_CLOSING.sub(r"<\1\2></\1>", xml)


def encode(envelope: Dict[str, Any]) -> EncodedEnvelope:
    """
    Convert a two-field JSON envelope into an XML document.

    The first key holds the header, which is handed back with the document so
    the caller can reattach it to the response. The second key names the root
    element and its value becomes the document body.
    """
    try:
        keys = list(envelope)
        header = envelope[keys[0]]
        root_tag = str(keys[1])
        logger.debug("Root tag", extra={"root_tag": root_tag})
        root = etree.Element(root_tag)
        _fill(root, envelope[keys[1]], set())
        xml = _expand_empty_elements(XML_DECLARATION + etree.tostring(root, encoding="unicode"))
    except (IndexError, KeyError, TypeError, ValueError, RecursionError) as exc:
        logger.error("JSON to XML conversion failed", extra={"error": str(exc)})
        raise ConversionError("Failed to convert JSON to XML (or) Missing Middle Ware Header") from exc
    logger.debug("Converted JSON to XML", extra={"xml": xml})
    return EncodedEnvelope(header, root_tag, xml)


# ----------------- XML -> JSON -----------------
def _qualified(element, name: str) -> str:
    qname = etree.QName(name)
    if not qname.namespace:
        return qname.localname
    prefixes = {uri: prefix for prefix, uri in element.nsmap.items() if prefix}
    prefix = prefixes.get(qname.namespace)
    return f"{prefix}:{qname.localname}" if prefix else qname.localname


def _attributes(element) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    parent = element.getparent()
    inherited = parent.nsmap if parent is not None else {}
    for prefix, uri in element.nsmap.items():
        if inherited.get(prefix) != uri:
            attrs[f"xmlns:{prefix}" if prefix else "xmlns"] = uri
    for name, value in element.attrib.items():
        attrs[_qualified(element, name)] = value
    return attrs


def _to_json(element) -> Any:
    children = [child for child in element if isinstance(child.tag, str)]
    # Tails of comments and processing instructions are element text too
    text = (element.text or "") + "".join(item.tail or "" for item in element)
    attrs = _attributes(element)
    if not children and not attrs:
        return text

    node: Dict[str, Any] = {}
    if attrs:
        node[PARSED_ATTRIBUTES_KEY] = attrs
    if children and not text.strip():
        text = ""
    if text:
        node[PARSED_TEXT_KEY] = text

    for child in children:
        key = _qualified(child, child.tag)
        value = _to_json(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]
    return node


def decode(xml_text: Union[str, bytes]) -> Dict[str, Any]:
    """
    Parse an XML document into ``{root_tag: value}``; lone elements stay scalar.

    A whitespace-only document decodes to ``{}``.
    """
    if isinstance(xml_text, str):
        xml_text = xml_text.encode("utf-8")
    if xml_text and not xml_text.strip():
        logger.debug("Parsed XML to JSON", extra={"result": {}})
        return {}
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(xml_text, parser)
    except (etree.XMLSyntaxError, ValueError) as exc:
        logger.error("Failed to parse XML to JSON", extra={"error": str(exc)})
        raise ParseError("Failed to parse XML response") from exc
    result = {_qualified(root, root.tag): _to_json(root)}
    logger.debug("Parsed XML to JSON", extra={"result": result})
    return result


# ----------------- Header validation -----------------
def _is_missing(value: Any) -> bool:
    # Falsy values (None, "", 0, False, empty containers) count as missing
    return not value


def validate_header(header: Any) -> None:
    fields = header if isinstance(header, dict) else {}
    missing = [name for name in REQUIRED_HEADER_FIELDS if _is_missing(fields.get(name))]
    if missing:
        logger.error("Missing required header fields", extra={"missing_fields": missing})
        raise ValidationError(missing)
    logger.debug("Header validation passed")


# ----------------- Mutual TLS call -----------------
class TlsConfig(BaseModel):
    cert_path: str
    key_path: str
    ca_path: str


class MutualTlsAdapter(HTTPAdapter):
    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def build_ssl_context(tls: TlsConfig) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=tls.ca_path)
    context.load_cert_chain(certfile=tls.cert_path, keyfile=tls.key_path)
    # Peer verification stays off: the client identity is presented, the server's is not checked
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def build_session(tls: TlsConfig) -> requests.Session:
    session = requests.Session()
    session.verify = False
    session.mount("https://", MutualTlsAdapter(build_ssl_context(tls)))
    return session


def _exception_chain(exc: BaseException):
    pending = [exc]
    seen = set()
    while pending:
        err = pending.pop()
        if id(err) in seen:
            continue
        seen.add(id(err))
        yield err
        related = [err.__cause__, err.__context__, getattr(err, "reason", None), *err.args]
        pending.extend(r for r in related if isinstance(r, BaseException))


def is_certificate_failure(exc: BaseException) -> bool:
    for err in _exception_chain(exc):
        if isinstance(err, ssl.SSLCertVerificationError) and err.verify_code in CERTIFICATE_VERIFY_CODES:
            return True
        if "certificate" in str(err).lower():
            return True
    return False


def _upstream_detail(exc: requests.RequestException) -> str:
    response = exc.response
    if response is not None and response.text:
        return response.text
    return str(exc)


def send(
    xml_body: str,
    endpoint_url: Optional[str],
    tls: TlsConfig,
    session: Optional[requests.Session] = None,
) -> bytes:
    """
    POST the XML document over mutual TLS and return the raw response body.

    Failures are classified as CertificateError, UpstreamError or
    EmptyResponseError; anything else propagates unchanged. A session created
    here is always closed before returning.
    """
    owns_session = session is None
    try:
        if owns_session:
            session = build_session(tls)
        logger.debug("Sending API request", extra={"endpoint": endpoint_url})
        with session.post(
            endpoint_url,
            data=xml_body.encode("utf-8"),
            headers=SOAP_HEADERS,
            timeout=REQUEST_TIMEOUT,
        ) as response:
            response.raise_for_status()
            content = response.content
            status = response.status_code
    except requests.RequestException as exc:
        if is_certificate_failure(exc):
            raise CertificateError(str(exc)) from exc
        raise UpstreamError(_upstream_detail(exc)) from exc
    except Exception as exc:
        if is_certificate_failure(exc):
            raise CertificateError(str(exc)) from exc
        raise
    finally:
        if owns_session and session is not None:
            session.close()

    logger.info("Certificate validation successful")
    logger.debug("API response", extra={"status": status, "body": (content or b"").decode("utf-8", "replace")})
    if not content:
        raise EmptyResponseError()
    return content
