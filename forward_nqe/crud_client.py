import logging
from typing import Any, Dict, List, Optional

from .errors import DecodeError
from .executor import RequestExecutor
from .models import (
    Device,
    DeviceList,
    LocationChange,
    Location,
    Network,
    NqeDiffRequest,
    NqeDiffResult,
    NqeRunResult,
    PathSearch,
    PathSearchBatch,
    PathSearchBatchResult,
    PathSearchResult,
    Snapshot,
)
from .transport import ApiRequest

logger = logging.getLogger(__name__)


class CrudClient:
    """Thin wrapper around the plain network/device/snapshot/location endpoints.

    Every call is a single attempt; failures surface as the same classified
    errors the sync engine sees (ClientRejected, RetryableServerError, ...).
    """

    def __init__(self, executor: RequestExecutor):
        self.executor = executor
        self.logger = logging.getLogger(__name__)

    def _call(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        resp = self.executor.send_once(ApiRequest(method, endpoint, params=params, body=body))
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(f"failed to decode response from {method} {endpoint}: {exc}") from exc

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._call("GET", endpoint, params=params)

    def _post(self, endpoint: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._call("POST", endpoint, params=params, body=body)

    def _patch(self, endpoint: str, body: Any) -> Any:
        return self._call("PATCH", endpoint, body=body)

    def _delete(self, endpoint: str) -> Any:
        return self._call("DELETE", endpoint)

    @staticmethod
    def _list(data: Any, what: str) -> List[Any]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise DecodeError(f"failed to decode {what}: expected a list")
        return data

    # Networks

    def get_networks(self) -> List[Network]:
        return [Network.from_dict(n) for n in self._list(self._get("/api/networks"), "networks")]

    def create_network(self, name: str) -> Network:
        return Network.from_dict(self._post("/api/networks", params={"name": name}))

    def delete_network(self, network_id: str) -> Network:
        return Network.from_dict(self._delete(f"/api/networks/{network_id}"))

    def update_network(self, network_id: str, name: str) -> Network:
        return Network.from_dict(self._patch(f"/api/networks/{network_id}", {"name": name}))

    # Devices

    def get_devices(
        self,
        network_id: str,
        snapshot_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 0,
    ) -> DeviceList:
        params: Dict[str, Any] = {}
        if snapshot_id:
            params["snapshotId"] = snapshot_id
        if offset > 0:
            params["offset"] = offset
        if limit > 0:
            params["limit"] = limit

        # The API returns a bare array of devices.
        raw = self._list(self._get(f"/api/networks/{network_id}/devices", params=params), "devices")
        devices = [Device.from_dict(d) for d in raw]
        return DeviceList(devices=devices, total_count=len(devices))

    def get_device_locations(self, network_id: str) -> Dict[str, str]:
        """Return the device name -> location id mapping for a network."""
        data = self._get(f"/api/networks/{network_id}/atlas") or {}
        if not isinstance(data, dict):
            raise DecodeError("failed to decode device locations: expected an object")
        return {str(k): str(v) for k, v in data.items()}

    def update_device_locations(self, network_id: str, locations: Dict[str, str]) -> None:
        self.logger.info("Updating %d device locations in network %s", len(locations), network_id)
        self._patch(f"/api/networks/{network_id}/atlas", locations)

    # Snapshots

    def get_snapshots(self, network_id: str) -> List[Snapshot]:
        data = self._get(f"/api/networks/{network_id}/snapshots") or {}
        if not isinstance(data, dict):
            raise DecodeError("failed to decode snapshots: expected an object")
        return [Snapshot.from_dict(s) for s in self._list(data.get("snapshots"), "snapshots")]

    def get_latest_snapshot(self, network_id: str) -> Snapshot:
        return Snapshot.from_dict(self._get(f"/api/networks/{network_id}/snapshots/latestProcessed"))

    def delete_snapshot(self, snapshot_id: str) -> None:
        self.logger.warning("Deleting snapshot %s", snapshot_id)
        self._delete(f"/api/snapshots/{snapshot_id}")

    # Locations

    def get_locations(self, network_id: str) -> List[Location]:
        raw = self._list(self._get(f"/api/networks/{network_id}/locations"), "locations")
        return [Location.from_dict(loc) for loc in raw]

    def create_location(self, network_id: str, location: LocationChange) -> Location:
        if not location.name:
            raise RuntimeError("location name is required")
        return Location.from_dict(self._post(f"/api/networks/{network_id}/locations", location.to_payload()))

    def create_locations_bulk(self, network_id: str, locations: List[LocationChange]) -> None:
        """Create or update many locations at once (the API answers 204)."""
        self._patch(f"/api/networks/{network_id}/locations", [loc.to_payload() for loc in locations])

    def update_location(self, network_id: str, location_id: str, update: LocationChange) -> Location:
        return Location.from_dict(
            self._patch(f"/api/networks/{network_id}/locations/{location_id}", update.to_payload())
        )

    def delete_location(self, network_id: str, location_id: str) -> Location:
        return Location.from_dict(self._delete(f"/api/networks/{network_id}/locations/{location_id}"))

    # NQE execution

    def run_nqe_query(
        self,
        *,
        query: Optional[str] = None,
        query_id: Optional[str] = None,
        network_id: Optional[str] = None,
        snapshot_id: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> NqeRunResult:
        """
        Run an NQE query, either inline source (query) or a stored query (query_id).

        parameters is passed through untouched; its shape is defined by the
        query being run.
        """
        if bool(query) == bool(query_id):
            raise RuntimeError("exactly one of query or query_id is required")

        body: Dict[str, Any] = {"query": query} if query else {"queryId": query_id}
        if parameters is not None:
            body["parameters"] = parameters
        if options is not None:
            body["queryOptions"] = options

        params: Dict[str, Any] = {}
        if network_id:
            params["networkId"] = network_id
        if snapshot_id:
            params["snapshotId"] = snapshot_id

        return NqeRunResult.from_dict(self._post("/api/nqe", body, params=params))

    def diff_nqe_query(self, before_snapshot_id: str, after_snapshot_id: str, request: NqeDiffRequest) -> NqeDiffResult:
        """Rows that changed for a stored query between two snapshots."""
        return NqeDiffResult.from_dict(
            self._post(f"/api/nqe-diffs/{before_snapshot_id}/{after_snapshot_id}", request.to_payload())
        )

    # Path search

    def search_paths(self, network_id: str, search: PathSearch) -> PathSearchResult:
        return PathSearchResult.from_dict(self._get(f"/api/networks/{network_id}/paths", params=search.to_params()))

    def search_paths_bulk(
        self,
        network_id: str,
        batch: PathSearchBatch,
        snapshot_id: Optional[str] = None,
    ) -> List[PathSearchBatchResult]:
        """Run many path searches in one request; answers come back in query order."""
        params: Dict[str, Any] = {}
        # "latest" is what the server assumes anyway
        if snapshot_id and snapshot_id != "latest":
            params["snapshotId"] = snapshot_id
        self.logger.debug("Bulk path search in network %s: %d queries", network_id, len(batch.queries))
        raw = self._list(
            self._post(f"/api/networks/{network_id}/paths-bulk", batch.to_payload(), params=params or None),
            "bulk path search results",
        )
        return [PathSearchBatchResult.from_dict(r) for r in raw]
