"""
Option functions for assembling a PolicyConfig.

Each ``with_*`` function returns an Option that records one setting on a
mutable PolicyOptions holder. ``build_config`` applies options in order
(later ones win) and freezes the result into a PolicyConfig.
"""

from typing import Callable, Dict, Iterable, List, Mapping, Optional

from secure_policy.handlers import BadHostHandler, as_bad_host_handler
from secure_policy.policy import PolicyConfig

STRICT_STS_SECONDS = 315360000  # 10 years


class PolicyOptions:
    """Mutable staging area; only used while options are being applied."""

    def __init__(self, base: Optional[PolicyConfig] = None) -> None:
        self.fields: Dict[str, object] = base.model_dump() if base is not None else {}
        self.bad_host_handler = None

    def apply(self, options: Iterable["Option"]) -> "PolicyOptions":
        for option in options:
            option(self)
        return self

    def to_config(self) -> PolicyConfig:
        return PolicyConfig(**self.fields)

    def to_handler(self) -> BadHostHandler:
        return as_bad_host_handler(self.bad_host_handler)


Option = Callable[[PolicyOptions], None]


def _set(field: str, value) -> Option:
    def option(o: PolicyOptions) -> None:
        o.fields[field] = value
    return option


def with_allowed_hosts(hosts: Iterable[str]) -> Option:
    """Fully qualified host names that are allowed. Empty allows any host."""
    return _set("allowed_hosts", tuple(hosts))


def with_ssl_redirect(enabled: bool) -> Option:
    """Only allow https requests; plain http is redirected."""
    return _set("ssl_redirect", enabled)


def with_ssl_temporary_redirect(enabled: bool) -> Option:
    """Redirect with 302 instead of 301."""
    return _set("ssl_temporary_redirect", enabled)


def with_ssl_host(host: str) -> Option:
    """Host used for the https redirect. Empty keeps the request host."""
    return _set("ssl_host", host)


def with_sts_seconds(seconds: int) -> Option:
    """max-age of Strict-Transport-Security. 0 omits the header."""
    return _set("sts_seconds", seconds)


def with_sts_include_subdomains(enabled: bool) -> Option:
    return _set("sts_include_subdomains", enabled)


def with_frame_deny(enabled: bool) -> Option:
    """X-Frame-Options: DENY."""
    return _set("frame_deny", enabled)


def with_custom_frame_options_value(value: str) -> Option:
    """Custom X-Frame-Options value. Overrides frame deny."""
    return _set("custom_frame_options_value", value)


def with_content_type_nosniff(enabled: bool) -> Option:
    return _set("content_type_nosniff", enabled)


def with_browser_xss_filter(enabled: bool) -> Option:
    return _set("browser_xss_filter", enabled)


def with_content_security_policy(policy: str) -> Option:
    return _set("content_security_policy", policy)


def with_referrer_policy(policy: str) -> Option:
    return _set("referrer_policy", policy)


def with_feature_policy(policy: str) -> Option:
    return _set("feature_policy", policy)


def with_is_development(enabled: bool) -> Option:
    """Disable the whole policy."""
    return _set("is_development", enabled)


def with_ie_no_open(enabled: bool) -> Option:
    """Keep Internet Explorer from executing downloads in the site's context."""
    return _set("ie_no_open", enabled)


def with_dont_redirect_ipv4_hostnames(enabled: bool) -> Option:
    """
    Skip the https redirect for IPv4-literal hosts, so load balancer
    health checks over plain http succeed.
    """
    return _set("dont_redirect_ipv4_hostnames", enabled)


def with_ssl_proxy_headers(headers: Mapping[str, str]) -> Option:
    """
    Treat an insecure request as secure if any of these headers carries
    its expected value, e.g. behind a TLS-terminating proxy.
    """
    return _set("ssl_proxy_headers", dict(headers))


def with_bad_host_handler(handler) -> Option:
    """BadHostHandler or callable invoked for hosts not in the allow-list."""
    def option(o: PolicyOptions) -> None:
        o.bad_host_handler = handler
    return option


STRICT_DEFAULTS: List[Option] = [
    with_ssl_redirect(True),
    with_is_development(False),
    with_sts_seconds(STRICT_STS_SECONDS),
    with_sts_include_subdomains(True),
    with_frame_deny(True),
    with_content_type_nosniff(True),
    with_browser_xss_filter(True),
    with_content_security_policy("default-src 'self'"),
    with_ie_no_open(True),
    with_ssl_proxy_headers({"X-Forwarded-Proto": "https"}),
]


def build_options(*options: Option, base: Optional[PolicyConfig] = None) -> PolicyOptions:
    return PolicyOptions(base).apply(options)


def build_config(*options: Option, base: Optional[PolicyConfig] = None) -> PolicyConfig:
    """Apply options in order and return the frozen config."""
    return build_options(*options, base=base).to_config()


def default_config(*options: Option) -> PolicyConfig:
    """Strict defaults with ``options`` applied on top."""
    return build_config(*STRICT_DEFAULTS, *options)
