"""The Cloud CDN resource chain and the gcloud calls that manage it.

Every resource is named ``{bucket}-{suffix}``. Bucket names are globally
unique, so the whole chain is too. Nothing is cached between invocations:
``exists()`` asks the provider every time.
"""

import re
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from gcp_cdn_deploy.errors import AmbiguousLookupError, ExternalCallError, ValidationError

IP_ADDRESS = "IPAddress"
BACKEND_BUCKET = "BackendBucket"
URL_MAP = "URLMap"
SSL_CERTIFICATE = "SSLCertificate"
HTTPS_PROXY = "HTTPSProxy"
FORWARDING_RULE = "ForwardingRule"

# gcloud describe output for a missing resource
NOT_FOUND_PATTERN = re.compile(r"was not found|notFound|\b404\b", re.IGNORECASE)


def run_gcloud(args: List[str]) -> subprocess.CompletedProcess:
    return subprocess.run(["gcloud", *args], capture_output=True, text=True)


class GCloud:
    """Execution context shared by every resource handle."""

    def __init__(self, project: str, bucket: str, runner: Callable = None, strict: bool = False):
        self.project = project
        self.bucket = bucket
        self.runner = runner or run_gcloud
        self.strict = strict

    def exec(self, args: List[str]) -> str:
        """Run a gcloud command and return its trimmed stdout."""
        try:
            result = self.runner([*args, f"--project={self.project}"])
        except OSError as e:
            raise ExternalCallError(f"could not run gcloud: {e}") from e
        if result.returncode != 0:
            raise ExternalCallError((result.stderr or "").strip() or f"gcloud exited with code {result.returncode}")
        return (result.stdout or "").strip()

    def resource_name(self, kind: str) -> str:
        return f"{self.bucket}-{RESOURCE_KINDS[kind].suffix}"

    def handle(self, kind: str) -> "ResourceHandle":
        return ResourceHandle(RESOURCE_KINDS[kind], self)


def _ip_address_flags(gc: GCloud, params: dict) -> List[str]:
    return ["--network-tier=PREMIUM", "--ip-version=IPV4"]


def _backend_bucket_flags(gc: GCloud, params: dict) -> List[str]:
    return [f"--gcs-bucket-name={gc.bucket}", "--enable-cdn"]


def _url_map_flags(gc: GCloud, params: dict) -> List[str]:
    return [f"--default-backend-bucket={gc.resource_name(BACKEND_BUCKET)}"]


def _ssl_certificate_flags(gc: GCloud, params: dict) -> List[str]:
    domain = params.get("domain")
    if not domain:
        raise ValidationError("a domain is required to create a managed SSL certificate")
    return [f"--domains={domain}"]


def _https_proxy_flags(gc: GCloud, params: dict) -> List[str]:
    return [
        f"--url-map={gc.resource_name(URL_MAP)}",
        f"--ssl-certificates={gc.resource_name(SSL_CERTIFICATE)}",
    ]


def _forwarding_rule_flags(gc: GCloud, params: dict) -> List[str]:
    return [
        f"--address={gc.resource_name(IP_ADDRESS)}",
        f"--target-https-proxy={gc.resource_name(HTTPS_PROXY)}",
        "--ports=443",
    ]


@dataclass(frozen=True)
class ResourceKind:
    kind: str
    label: str
    suffix: str
    collection: str
    create_flags: Callable[[GCloud, dict], List[str]]
    depends_on: Tuple[str, ...] = ()
    global_scope: bool = False


RESOURCE_KINDS: Dict[str, ResourceKind] = {
    k.kind: k
    for k in (
        ResourceKind(IP_ADDRESS, "IP address", "ip", "addresses", _ip_address_flags, global_scope=True),
        ResourceKind(BACKEND_BUCKET, "backend bucket", "backend-bucket", "backend-buckets", _backend_bucket_flags),
        ResourceKind(URL_MAP, "load balancer", "lb", "url-maps", _url_map_flags, depends_on=(BACKEND_BUCKET,)),
        ResourceKind(
            SSL_CERTIFICATE, "SSL certificate", "cert", "ssl-certificates", _ssl_certificate_flags, global_scope=True
        ),
        ResourceKind(
            HTTPS_PROXY,
            "HTTPS proxy",
            "lb-proxy",
            "target-https-proxies",
            _https_proxy_flags,
            depends_on=(URL_MAP, SSL_CERTIFICATE),
        ),
        ResourceKind(
            FORWARDING_RULE,
            "forwarding rule",
            "lb-forwarding-rule",
            "forwarding-rules",
            _forwarding_rule_flags,
            depends_on=(IP_ADDRESS, HTTPS_PROXY),
            global_scope=True,
        ),
    )
}


def provisioning_order(kinds: Optional[Dict[str, ResourceKind]] = None) -> List[str]:
    """Roots before dependents; ties keep declaration order."""
    kinds = RESOURCE_KINDS if kinds is None else kinds
    order: List[str] = []
    remaining = list(kinds)
    while remaining:
        ready = [k for k in remaining if all(dep in order for dep in kinds[k].depends_on)]
        if not ready:
            raise ValueError(f"Unresolvable dependencies between: {', '.join(remaining)}")
        order.append(ready[0])
        remaining.remove(ready[0])
    return order


def decommissioning_order(kinds: Optional[Dict[str, ResourceKind]] = None) -> List[str]:
    return list(reversed(provisioning_order(kinds)))


class ResourceHandle:
    def __init__(self, kind: ResourceKind, gcloud: GCloud):
        self.kind = kind
        self.gcloud = gcloud

    def __repr__(self):
        return f"ResourceHandle({self.kind.kind}, {self.name!r})"

    @property
    def name(self) -> str:
        return self.gcloud.resource_name(self.kind.kind)

    @property
    def label(self) -> str:
        return self.kind.label

    def _command(self, verb: str) -> List[str]:
        args = ["compute", self.kind.collection, verb, self.name]
        if self.kind.global_scope:
            args.append("--global")
        return args

    def describe(self, fmt: str = None) -> str:
        args = self._command("describe")
        if fmt:
            args.append(f"--format={fmt}")
        return self.gcloud.exec(args)

    def exists(self) -> bool:
        """Any describe failure counts as absent unless the context is strict."""
        try:
            self.describe()
        except ExternalCallError as e:
            if self.gcloud.strict and not NOT_FOUND_PATTERN.search(e.message):
                raise AmbiguousLookupError(e.message, resource=self.name) from e
            return False
        return True

    def create(self, params: dict = None) -> str:
        return self.gcloud.exec(self._command("create") + self.kind.create_flags(self.gcloud, params or {}))

    def destroy(self) -> str:
        return self.gcloud.exec(self._command("delete") + ["--quiet"])
