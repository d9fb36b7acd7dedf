"""
Policy evaluation for the secure middleware.
Decides per request whether to continue (with security headers),
redirect to HTTPS, or reject a host that is not allowed.
"""

from enum import Enum
from ipaddress import IPv4Address, ip_address
from typing import Annotated, Dict, Mapping, Optional, Tuple
from types import MappingProxyType
from urllib.parse import urlsplit, urlunsplit

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from starlette.requests import Request

STS_HEADER = "Strict-Transport-Security"
FRAME_OPTIONS_HEADER = "X-Frame-Options"
CONTENT_TYPE_OPTIONS_HEADER = "X-Content-Type-Options"
XSS_PROTECTION_HEADER = "X-XSS-Protection"
DOWNLOAD_OPTIONS_HEADER = "X-Download-Options"
CSP_HEADER = "Content-Security-Policy"
REFERRER_POLICY_HEADER = "Referrer-Policy"
FEATURE_POLICY_HEADER = "Feature-Policy"

# Read-only view over a validated dict, dumped back as a plain dict
FrozenHeaders = Annotated[
    Mapping[str, str],
    AfterValidator(lambda v: MappingProxyType(dict(v))),
    PlainSerializer(dict, return_type=Dict[str, str]),
]


class PolicyConfig(BaseModel):
    """
    Immutable security policy.
    Zero/empty values mean the corresponding feature is disabled.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed_hosts: Tuple[str, ...] = ()
    ssl_redirect: bool = False
    ssl_temporary_redirect: bool = False
    ssl_host: str = ""
    sts_seconds: int = Field(default=0, ge=0)
    sts_include_subdomains: bool = False
    frame_deny: bool = False
    custom_frame_options_value: str = ""
    content_type_nosniff: bool = False
    browser_xss_filter: bool = False
    content_security_policy: str = ""
    referrer_policy: str = ""
    feature_policy: str = ""
    ie_no_open: bool = False
    is_development: bool = False
    dont_redirect_ipv4_hostnames: bool = False
    ssl_proxy_headers: FrozenHeaders = Field(default_factory=dict, validate_default=True)

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def _hosts_to_tuple(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return tuple(v)


class RequestFacts(BaseModel):
    """What the evaluator needs to know about one inbound request."""

    model_config = ConfigDict(frozen=True)

    host: str = ""
    is_tls: bool = False
    path: str = "/"
    query: str = ""
    # Header names are stored lower-cased
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    @classmethod
    def _lower_header_names(cls, v):
        if v is None:
            return {}
        return {str(k).lower(): val for k, val in dict(v).items()}

    @classmethod
    def from_request(cls, request: Request) -> "RequestFacts":
        return cls(
            host=request.headers.get("host", ""),
            is_tls=request.url.scheme in ("https", "wss"),
            path=raw_request_path(request),
            query=request.url.query,
            headers=request.headers,
        )


def raw_request_path(request: Request) -> str:
    """
    Request path exactly as sent, percent-encoding intact, under the
    mount's root_path. Falls back to the decoded path when the server
    does not provide raw_path.
    """
    scope = request.scope
    root_path = scope.get("root_path", "")
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope.get("path", "/")
    if root_path and not path.startswith(root_path):
        path = root_path + path
    return path


class DecisionAction(str, Enum):
    """Outcome of a policy evaluation."""
    CONTINUE = "continue"
    REDIRECT = "redirect"
    REJECT = "reject"


class Decision(BaseModel):
    """Continue with headers, redirect to ``location``, or reject."""

    model_config = ConfigDict(frozen=True)

    action: DecisionAction
    headers: Dict[str, str] = Field(default_factory=dict)
    location: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def terminates(self) -> bool:
        """True when downstream handlers must not run."""
        return self.action is not DecisionAction.CONTINUE


def split_host_port(host: str) -> Tuple[str, Optional[int]]:
    """
    Split a Host header value into hostname and port.
    Handles ``name:port``, ``[v6]:port`` and bare IPv6 literals. The
    hostname keeps its original case. A value that does not parse as a
    host is returned whole, with no port.
    """
    host = host.strip()
    try:
        ip_address(host)
        return host, None
    except ValueError:
        pass

    try:
        parts = urlsplit("//" + host)
        port = parts.port
    except ValueError:
        return host, None
    # Anything beyond host[:port] (path, userinfo) is not a plain host
    if parts.netloc != host or "@" in host:
        return host, None

    if host.startswith("["):
        return host[1:host.index("]")], port
    return host.partition(":")[0], port


def is_ipv4(host: str) -> bool:
    """True if ``host`` (optionally with a port) is an IPv4 literal."""
    name, _ = split_host_port(host)
    try:
        return isinstance(ip_address(name), IPv4Address)
    except ValueError:
        return False


class PolicyEvaluator:
    """
    Stateless evaluator bound to one PolicyConfig.
    Safe to share between concurrent requests.
    """

    def __init__(self, config: PolicyConfig) -> None:
        self.config = config
        # Precomputed once, config is frozen
        self._headers = self._build_headers(config)

    def evaluate(self, facts: RequestFacts) -> Decision:
        config = self.config

        if config.is_development:
            return Decision(action=DecisionAction.CONTINUE)

        if not self.is_allowed_host(facts.host):
            return Decision(action=DecisionAction.REJECT, status_code=403)

        if config.ssl_redirect and not self.is_secure(facts):
            if not (config.dont_redirect_ipv4_hostnames and is_ipv4(facts.host)):
                return Decision(
                    action=DecisionAction.REDIRECT,
                    location=self.redirect_url(facts),
                    status_code=302 if config.ssl_temporary_redirect else 301,
                )

        return Decision(action=DecisionAction.CONTINUE, headers=dict(self._headers))

    def is_allowed_host(self, host: str) -> bool:
        if not self.config.allowed_hosts:
            return True
        name, _ = split_host_port(host)
        return name in self.config.allowed_hosts

    def is_secure(self, facts: RequestFacts) -> bool:
        if facts.is_tls:
            return True
        for name, expected in self.config.ssl_proxy_headers.items():
            if facts.headers.get(name.lower()) == expected:
                return True
        return False

    def redirect_url(self, facts: RequestFacts) -> str:
        host = self.config.ssl_host or facts.host
        return urlunsplit(("https", host, facts.path or "/", facts.query, ""))

    @staticmethod
    def _build_headers(config: PolicyConfig) -> Mapping[str, str]:
        headers: Dict[str, str] = {}

        if config.sts_seconds > 0:
            value = f"max-age={config.sts_seconds}"
            if config.sts_include_subdomains:
                value += "; includeSubdomains"
            headers[STS_HEADER] = value

        if config.custom_frame_options_value:
            headers[FRAME_OPTIONS_HEADER] = config.custom_frame_options_value
        elif config.frame_deny:
            headers[FRAME_OPTIONS_HEADER] = "DENY"

        if config.content_type_nosniff:
            headers[CONTENT_TYPE_OPTIONS_HEADER] = "nosniff"
        if config.browser_xss_filter:
            headers[XSS_PROTECTION_HEADER] = "1; mode=block"
        if config.ie_no_open:
            headers[DOWNLOAD_OPTIONS_HEADER] = "noopen"
        if config.content_security_policy:
            headers[CSP_HEADER] = config.content_security_policy
        if config.referrer_policy:
            headers[REFERRER_POLICY_HEADER] = config.referrer_policy
        if config.feature_policy:
            headers[FEATURE_POLICY_HEADER] = config.feature_policy

        return headers
