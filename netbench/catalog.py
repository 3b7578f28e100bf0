"""
Endpoint catalog: the read-only set of targets probed by a session.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class TargetKind(str, Enum):
    RESOLVER = "resolver"
    HOST = "host"
    HOST_PORT = "host_port"
    URL = "url"
    INTERFACE = "interface"


@dataclass(frozen=True)
class Target:
    """An endpoint descriptor.

    ``address`` is the resolver IP, host, ``host:port``, URL or interface name
    depending on ``kind``. ``domain`` is only used by resolver targets.
    """

    kind: TargetKind
    address: str
    domain: str | None = None

    @classmethod
    def resolver(cls, server: str, domain: str) -> Target:
        return cls(TargetKind.RESOLVER, server, domain)

    @classmethod
    def host(cls, host: str) -> Target:
        return cls(TargetKind.HOST, host)

    @classmethod
    def host_port(cls, host: str, port: int) -> Target:
        return cls(TargetKind.HOST_PORT, f"{host}:{port}")

    @classmethod
    def url(cls, url: str) -> Target:
        return cls(TargetKind.URL, url)

    @classmethod
    def interface(cls, name: str) -> Target:
        return cls(TargetKind.INTERFACE, name)

    @property
    def hostname(self) -> str:
        if self.kind == TargetKind.HOST_PORT:
            return self.address.rsplit(":", 1)[0]
        return self.address

    @property
    def port(self) -> int | None:
        if self.kind != TargetKind.HOST_PORT:
            return None
        return int(self.address.rsplit(":", 1)[1])

    @property
    def label(self) -> str:
        if self.kind == TargetKind.RESOLVER:
            return f"{self.domain}@{self.address}"
        return self.address


@dataclass(frozen=True)
class EndpointCatalog:
    """Targets grouped by the collector that probes them."""

    dns: tuple[Target, ...]
    latency: tuple[Target, ...]
    tcp: tuple[Target, ...]
    download: tuple[Target, ...]
    upload: tuple[Target, ...]


DNS_SERVERS = ("8.8.8.8", "1.1.1.1", "208.67.222.222", "9.9.9.9")
DNS_DOMAINS = ("google.com", "cloudflare.com", "amazon.com", "microsoft.com")

LATENCY_HOSTS = ("8.8.8.8", "1.1.1.1", "208.67.222.222")

TCP_ENDPOINTS = (("google.com", 443), ("cloudflare.com", 443), ("amazon.com", 443))

CDN_ENDPOINTS = (
    "https://speed.cloudflare.com/__down?bytes=10485760",
    "https://amazonas.speedtest.net.id/speedtest/random4000x4000.jpg",
    "https://az4057.vo.msecnd.net/speedtest/random4000x4000.jpg",
    "https://storage.googleapis.com/gcp-public-data-landsat/index.csv.gz",
    "https://fastly.com/speedtest/10mb.test",
)

SPEED_TEST_ENDPOINTS = (
    "http://speedtest-sgp1.digitalocean.com/100mb.test",
    "http://lg-sjc.fdcservers.net/100MB.test",
    "http://proof.ovh.net/files/100Mb.dat",
    "https://bouygues.testdebit.info/100M.iso",
)

UPLOAD_ENDPOINTS = ("https://httpbin.org/post",)


def default_catalog() -> EndpointCatalog:
    """Build the built-in catalog of public resolvers, hosts and CDNs."""
    return EndpointCatalog(
        dns=tuple(Target.resolver(s, d) for s in DNS_SERVERS for d in DNS_DOMAINS),
        latency=tuple(Target.host(h) for h in LATENCY_HOSTS),
        tcp=tuple(Target.host_port(h, p) for h, p in TCP_ENDPOINTS),
        download=tuple(Target.url(u) for u in CDN_ENDPOINTS + SPEED_TEST_ENDPOINTS),
        upload=tuple(Target.url(u) for u in UPLOAD_ENDPOINTS),
    )


def load_catalog(path: Path) -> EndpointCatalog:
    """Load a catalog from JSON.

    Expected format:
        {
          "dns": [{"resolver": "1.1.1.1", "domain": "example.com"}],
          "latency": ["1.1.1.1"],
          "tcp": ["example.com:443"],
          "download": ["https://example.com/10mb.bin"],
          "upload": ["https://example.com/upload"]
        }

    Missing groups are empty. Raises ValueError on malformed entries.
    """
    with open(path) as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Malformed catalog {path}: top level must be an object")

    def _host_port(entry: str) -> Target:
        host, sep, port = entry.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Invalid host:port entry in catalog: {entry!r}")
        return Target.host_port(host, int(port))

    try:
        catalog = EndpointCatalog(
            dns=tuple(Target.resolver(e["resolver"], e["domain"]) for e in data.get("dns", [])),
            latency=tuple(Target.host(h) for h in data.get("latency", [])),
            tcp=tuple(_host_port(e) for e in data.get("tcp", [])),
            download=tuple(Target.url(u) for u in data.get("download", [])),
            upload=tuple(Target.url(u) for u in data.get("upload", [])),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed catalog {path}: {e}") from e

    logger.info(
        f"Loaded catalog from {path}: {len(catalog.dns)} dns, {len(catalog.latency)} latency, "
        f"{len(catalog.tcp)} tcp, {len(catalog.download)} download, {len(catalog.upload)} upload"
    )
    return catalog
