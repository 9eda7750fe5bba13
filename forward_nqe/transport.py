import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import requests
import urllib3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    """A single call against the Forward API, relative to the base URL."""

    method: str
    endpoint: str
    params: Optional[Dict[str, Any]] = None
    body: Any = None

    def body_size(self) -> int:
        if self.body is None:
            return 0
        return len(json.dumps(self.body).encode("utf-8"))


class Transport:
    """Pre-configured HTTP session: base URL, basic auth, TLS and timeout."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout: int = 600,
        verify: Union[bool, str] = True,
        client_cert: Optional[Tuple[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify = verify

        self.session = session or requests.Session()
        # requests builds "Authorization: Basic base64(key:secret)" from this.
        self.session.auth = (api_key, api_secret)
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        if client_cert:
            self.session.cert = client_cert

        if verify is False:
            # self-signed appliance certificates are common on-prem
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logger.warning("TLS verification disabled for %s", self.base_url)

    @classmethod
    def from_settings(cls, settings) -> "Transport":
        verify: Union[bool, str] = not settings.insecure_skip_verify
        if verify and settings.ca_cert_path:
            verify = settings.ca_cert_path

        client_cert = None
        if settings.client_cert_path and settings.client_key_path:
            client_cert = (settings.client_cert_path, settings.client_key_path)

        return cls(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            api_secret=settings.api_secret,
            timeout=settings.timeout,
            verify=verify,
            client_cert=client_cert,
        )

    def url_for(self, request: ApiRequest) -> str:
        return f"{self.base_url}{request.endpoint}"

    def send(self, request: ApiRequest) -> requests.Response:
        """Send the request. Raises requests.RequestException if it cannot be sent."""
        return self.session.request(
            request.method,
            self.url_for(request),
            params=request.params,
            json=request.body,
            verify=self.verify,
            timeout=self.timeout,
        )
