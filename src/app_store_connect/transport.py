"""
HTTP transports for the App Store Connect API.

Two interchangeable backends share one contract: ``execute`` takes a method,
URL, headers and an optional JSON or raw body, and returns an
:class:`HttpResponse` with the status code and the parsed JSON body.

* :class:`RequestsTransport` talks HTTPS through ``requests``.
* :class:`CurlTransport` shells out to ``curl`` for hosts where the native
  TLS stack misbehaves.

Both honour a :class:`TrustPolicy`, which can tolerate transient certificate
revocation list (CRL) faults while still rejecting revoked certificates.
"""

import json
import logging
import os
import ssl
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from requests import certs
from requests.adapters import HTTPAdapter

from .exceptions import ApiError, TransportError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30
READ_TIMEOUT = 60

SUPPORTED_METHODS = ("GET", "POST", "PATCH", "PUT", "DELETE")

# OpenSSL verification codes raised by CRL lookups rather than by the
# certificate itself. X509_V_ERR_CERT_REVOKED (23) is deliberately absent.
# X509_V_ERR_CERT_NOT_YET_VALID (13) is also absent: a context without CRL
# checks still enforces validity dates, so retrying could not succeed.
CRL_ERROR_CODES = frozenset(
    {
        3,  # X509_V_ERR_UNABLE_TO_GET_CRL
        12,  # X509_V_ERR_CRL_HAS_EXPIRED
        14,  # X509_V_ERR_CRL_NOT_YET_VALID
    }
)
CERT_NOT_YET_VALID = 13
CERT_REVOKED = 23

# curl exit codes for DNS, connect, timeout, TLS handshake and reset faults
CURL_TRANSIENT_EXIT_CODES = frozenset({6, 7, 28, 35, 52, 55, 56})


@dataclass
class HttpResponse:
    """Status code plus parsed JSON body of an HTTP exchange."""

    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def parse_body(text: Optional[str]) -> Dict[str, Any]:
    """Parse a response body; empty bodies become {} and non-JSON is kept raw."""
    if text is None or text.strip() == "":
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"raw": text}
    if isinstance(parsed, dict):
        return parsed
    return {"data": parsed}


def _normalize_method(method: str) -> str:
    normalized = method.upper()
    if normalized not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method}")
    return normalized


def _encode_payload(
    body: Optional[Dict[str, Any]], raw_body: Optional[bytes]
) -> Optional[bytes]:
    if raw_body is not None:
        return raw_body
    if body is not None:
        return json.dumps(body).encode("utf-8")
    return None


@dataclass(frozen=True)
class TrustPolicy:
    """Certificate verification settings shared by both transports.

    Args:
        verify_ssl: Verify the server certificate chain at all
        skip_crl_verification: Tolerate CRL retrieval/validity faults
        crl_file: PEM file with CRLs; enables revocation checks when set
    """

    verify_ssl: bool = True
    skip_crl_verification: bool = True
    crl_file: Optional[str] = None

    def tolerates(self, verify_code: Optional[int]) -> bool:
        """Whether a failed verification with this OpenSSL code may proceed."""
        if not self.verify_ssl or not self.skip_crl_verification:
            return False
        if verify_code is None or verify_code == CERT_REVOKED:
            return False
        return verify_code in CRL_ERROR_CODES

    def ssl_context(self, check_crl: bool = True) -> ssl.SSLContext:
        context = ssl.create_default_context(cafile=certs.where())
        if check_crl and self.crl_file:
            context.load_verify_locations(cafile=self.crl_file)
            context.verify_flags |= ssl.VERIFY_CRL_CHECK_LEAF
        else:
            context.verify_flags &= ~(
                ssl.VERIFY_CRL_CHECK_LEAF | ssl.VERIFY_CRL_CHECK_CHAIN
            )
        return context


def verify_code_of(error: BaseException) -> Optional[int]:
    """Dig the OpenSSL verify code out of a wrapped SSL exception."""
    pending = [error]
    seen = set()
    while pending:
        exc = pending.pop()
        if not isinstance(exc, BaseException) or id(exc) in seen:
            continue
        seen.add(id(exc))

        code = getattr(exc, "verify_code", None)
        if isinstance(code, int):
            return code

        pending.extend(exc.args)
        pending.append(getattr(exc, "reason", None))
        pending.append(exc.__cause__)
        pending.append(exc.__context__)
    return None


class Transport(ABC):
    """Interface implemented by every HTTP backend."""

    def __init__(self, trust_policy: Optional[TrustPolicy] = None):
        self.trust_policy = trust_policy or TrustPolicy()

    @abstractmethod
    def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]] = None,
        raw_body: Optional[bytes] = None,
    ) -> HttpResponse:
        """Send one request and return its status and parsed body."""


class TrustPolicyAdapter(HTTPAdapter):
    """HTTPAdapter that builds its connection pools with a fixed SSL context."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().proxy_manager_for(*args, **kwargs)


class RequestsTransport(Transport):
    """Native backend built on a ``requests.Session``."""

    def __init__(
        self,
        trust_policy: Optional[TrustPolicy] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(trust_policy)
        self.session = session or self._build_session(check_crl=True)
        self._relaxed_session: Optional[requests.Session] = None

    def _build_session(self, check_crl: bool) -> requests.Session:
        session = requests.Session()
        if not self.trust_policy.verify_ssl:
            session.verify = False
            return session
        adapter = TrustPolicyAdapter(self.trust_policy.ssl_context(check_crl=check_crl))
        session.mount("https://", adapter)
        return session

    @property
    def relaxed_session(self) -> requests.Session:
        """Session without CRL checks, used after a tolerated CRL fault."""
        if self._relaxed_session is None:
            self._relaxed_session = self._build_session(check_crl=False)
        return self._relaxed_session

    def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]] = None,
        raw_body: Optional[bytes] = None,
    ) -> HttpResponse:
        method = _normalize_method(method)
        payload = _encode_payload(body, raw_body)

        try:
            response = self._send(self.session, method, url, headers, payload)
        except requests.exceptions.SSLError as e:
            code = verify_code_of(e)
            if not self.trust_policy.tolerates(code):
                logger.error(f"TLS verification failed for {url}: {e}")
                if code == CERT_NOT_YET_VALID:
                    raise TransportError(
                        f"SSL error: certificate not yet valid, check the system clock: {e}"
                    )
                raise TransportError(f"SSL error: {e}")
            logger.warning(
                f"Ignoring CRL verification fault (code {code}) for {url}; "
                "retrying without revocation checks"
            )
            response = self._send_or_raise(
                self.relaxed_session, method, url, headers, payload
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timed out: {e}")
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection failed: {e}")
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Request failed: {e}")

        return HttpResponse(status=response.status_code, body=parse_body(response.text))

    def _send(self, session, method, url, headers, payload) -> requests.Response:
        return session.request(
            method=method,
            url=url,
            headers=headers,
            data=payload,
            timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
        )

    def _send_or_raise(self, session, method, url, headers, payload):
        try:
            return self._send(session, method, url, headers, payload)
        except (
            requests.exceptions.SSLError,
            requests.exceptions.Timeout,
            requests.exceptions.ConnectionError,
        ) as e:
            raise TransportError(f"Request failed: {e}")


class CurlTransport(Transport):
    """Subprocess backend driving the ``curl`` binary."""

    def __init__(self, trust_policy: Optional[TrustPolicy] = None, curl: str = "curl"):
        super().__init__(trust_policy)
        self.curl = curl

    def build_command(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        output_path: str,
        has_payload: bool,
    ) -> list:
        cmd = [
            self.curl,
            "-s",
            "-g",  # URLs contain filter[...] brackets
            "-o",
            output_path,
            "-w",
            "%{http_code}",
            "-X",
            method,
            "--connect-timeout",
            str(CONNECT_TIMEOUT),
            "--speed-limit",
            "1",
            "--speed-time",
            str(READ_TIMEOUT),
        ]

        policy = self.trust_policy
        if not policy.verify_ssl:
            cmd.append("-k")
        elif policy.crl_file and not policy.skip_crl_verification:
            # curl cannot tell CRL faults apart, so CRLs are only enforced strictly
            cmd += ["--crlfile", policy.crl_file]

        for key, value in headers.items():
            cmd += ["-H", f"{key}: {value}"]

        if has_payload:
            cmd += ["--data-binary", "@-"]

        cmd.append(url)
        return cmd

    def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]] = None,
        raw_body: Optional[bytes] = None,
    ) -> HttpResponse:
        method = _normalize_method(method)
        payload = _encode_payload(body, raw_body)

        with tempfile.TemporaryDirectory(prefix="asc-curl-") as tmpdir:
            output_path = os.path.join(tmpdir, "response")
            cmd = self.build_command(method, url, headers, output_path, payload is not None)
            logger.debug(f"curl {method} {url}")

            try:
                completed = subprocess.run(
                    cmd, input=payload, capture_output=True, check=False
                )
            except OSError as e:
                raise ApiError(f"HTTP request failed: could not run curl: {e}")

            if completed.returncode in CURL_TRANSIENT_EXIT_CODES:
                raise TransportError(
                    f"HTTP request failed: curl exit code {completed.returncode}"
                )
            if completed.returncode != 0:
                raise ApiError(f"HTTP request failed: curl exit code {completed.returncode}")

            status_output = completed.stdout.decode("utf-8", "replace").strip()
            try:
                status = int(status_output)
            except ValueError:
                raise ApiError(f"HTTP request failed: unexpected curl output {status_output!r}")

            text = ""
            if os.path.exists(output_path):
                with open(output_path, "rb") as f:
                    text = f.read().decode("utf-8", "replace")

        return HttpResponse(status=status, body=parse_body(text))


def build_transport(config) -> Transport:
    """Pick the backend named by the configuration."""
    policy = TrustPolicy(
        verify_ssl=config.verify_ssl,
        skip_crl_verification=config.skip_crl_verification,
        crl_file=config.crl_file,
    )
    if config.use_curl:
        return CurlTransport(policy)
    return RequestsTransport(policy)
