"""REST record source for PostgREST-style data APIs.

Reads ``/rest/v1/<table>`` endpoints such as the contractor tracker table.
This module is the fetch transport: request timeouts are enforced here
through ``requests``, never by the caching layers above it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

import certifi
import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..dashboard.config import SourceConfig
from .base import BaseRecordSource, RecordSourceError


DEFAULT_TABLE = "contractor_tracker"
DEFAULT_ORDER = "created_at.desc"


class RestRecordSource(BaseRecordSource):
    """Record source over a PostgREST endpoint.

    Equality filters map to ``<column>=eq.<value>`` and multi-key fetches to
    ``id=in.(1,2,3)``.
    """

    def __init__(
        self,
        base_url: str,
        table: str = DEFAULT_TABLE,
        api_key: Optional[str] = None,
        timeout: int = 30,
        verify: bool = True,
        ca_bundle: Optional[str] = None,
        transport_retries: int = 0,
        order: str = DEFAULT_ORDER,
    ):
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.api_key = api_key
        self.timeout = timeout
        self.order = order
        self.transport_retries = max(0, transport_retries)
        self._verify = self._determine_verify(not verify, ca_bundle)
        self._session: Optional[requests.Session] = None

        # Disable warnings once at init if not verifying SSL
        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_config(cls, config: SourceConfig) -> "RestRecordSource":
        """Create a source from the ``source`` section of the config."""
        if not config.url:
            raise ValueError("source.url is required for the REST record source")
        return cls(
            config.url,
            table=config.table,
            api_key=config.api_key,
            timeout=config.timeout,
            verify=config.verify,
            ca_bundle=config.ca_bundle,
            transport_retries=config.transport_retries,
            order=config.order,
        )

    @property
    def name(self) -> str:
        return self.table

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def fetch_records(self, query: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        for column, value in (query or {}).items():
            params[column] = f"eq.{value}"
        params["order"] = self.order
        return self._get(params, "fetching records")

    def fetch_by_ids(self, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        id_list = ",".join(str(i) for i in ids)
        params = {"select": "*", "id": f"in.({id_list})"}
        return self._get(params, f"fetching {len(ids)} records by id")

    def _determine_verify(self, insecure: bool, ca_bundle: Optional[str]):
        """Determine SSL verification setting."""
        if insecure:
            return False
        if ca_bundle:
            return ca_bundle
        return certifi.where()

    def _get_session(self) -> requests.Session:
        """Get or create a pooled requests session.

        Transport retries default to zero: retrying is the caller's decision
        (see ``retry_async``).
        """
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=self.transport_retries,
                connect=self.transport_retries,
                read=self.transport_retries,
                backoff_factor=0.5,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("GET", "HEAD"),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry, pool_connections=5, pool_maxsize=10)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update(self._headers())
            self._session = session
        return self._session

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "facility-perf/1.0",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get(self, params: Dict[str, str], context: str) -> List[Dict[str, Any]]:
        session = self._get_session()
        try:
            resp = session.get(self.endpoint, params=params, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise RecordSourceError(self.name, f"HTTP {status} while {context}", e, status_code=status)
        except requests.exceptions.Timeout as e:
            raise RecordSourceError(self.name, f"Timed out after {self.timeout}s while {context}", e)
        except requests.exceptions.SSLError as e:
            raise RecordSourceError(
                self.name,
                "TLS/SSL error: certificate verify failed. Configure source.ca_bundle or source.verify.",
                e,
            )
        except requests.exceptions.JSONDecodeError as e:
            raise RecordSourceError(self.name, f"Invalid JSON while {context}", e)
        except requests.exceptions.RequestException as e:
            raise RecordSourceError(self.name, f"Request failed while {context}: {e}", e)

        if not isinstance(payload, list):
            raise RecordSourceError(self.name, f"Expected a JSON array while {context}")
        return payload

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session is not None:
            self._session.close()
            self._session = None
