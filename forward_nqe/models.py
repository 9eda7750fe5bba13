from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DecodeError


class Repository(str, Enum):
    """The two NQE query repositories hosted by the platform."""

    ORG = "org"
    FWD = "fwd"


def _require_mapping(raw: object, what: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise DecodeError(f"failed to decode {what}: expected an object, got {type(raw).__name__}")
    return raw


def _str_field(raw: Dict[str, Any], key: str, what: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"failed to decode {what}: {key!r} must be a string, got {value!r}")
    return value


def _int_field(raw: Dict[str, Any], key: str, what: str) -> int:
    value = raw.get(key)
    if value is None:
        return 0
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"failed to decode {what}: {key!r} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class QuerySummary:
    """One catalog entry as listed at the head commit of a repository."""

    path: str
    last_commit_id: str
    query_id: str
    source_code_sha: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "QuerySummary":
        data = _require_mapping(raw, "query summary")
        return cls(
            path=_str_field(data, "path", "query summary"),
            last_commit_id=_str_field(data, "lastCommitId", "query summary"),
            query_id=_str_field(data, "queryId", "query summary"),
            source_code_sha=_str_field(data, "sourceCodeSha", "query summary"),
        )


@dataclass
class CommitInfo:
    id: str = ""
    author_email: str = ""
    committed_at: int = 0  # epoch millis
    title: str = ""
    body: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "CommitInfo":
        if raw is None:
            return cls()
        data = _require_mapping(raw, "commit info")
        return cls(
            id=_str_field(data, "id", "commit info"),
            author_email=_str_field(data, "authorEmail", "commit info"),
            committed_at=_int_field(data, "committedAt", "commit info"),
            title=_str_field(data, "title", "commit info"),
            body=_str_field(data, "body", "commit info"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "authorEmail": self.author_email,
            "committedAt": self.committed_at,
            "title": self.title,
            "body": self.body,
        }


@dataclass
class QueryDetail:
    """
    Full record for one NQE query, tagged with the repository it came from.

    query_id and path are overwritten from the catalog summary once the
    detail has been fetched, so they always agree with the catalog.
    """

    query_id: str
    path: str
    source_code: str = ""
    intent: str = ""
    description: str = ""
    source_code_sha: str = ""
    commit_count: int = 0
    last_commit: CommitInfo = field(default_factory=CommitInfo)
    first_commit: CommitInfo = field(default_factory=CommitInfo)
    repository: Optional[Repository] = None

    @classmethod
    def from_dict(cls, raw: object, strict_repository: bool = False) -> "QueryDetail":
        """
        Build a detail from its camelCase JSON form.

        API responses may carry any repository string; the fetcher tags the
        detail itself, so unknown values are dropped. Stored catalogs are
        written by us and decoded with strict_repository=True.
        """
        data = _require_mapping(raw, "query detail")
        repository: Optional[Repository] = None
        repo_raw = data.get("repository")
        if repo_raw:
            try:
                repository = Repository(repo_raw)
            except ValueError as exc:
                if strict_repository:
                    raise DecodeError(f"failed to decode query detail: unknown repository {repo_raw!r}") from exc
        return cls(
            query_id=_str_field(data, "queryId", "query detail"),
            path=_str_field(data, "path", "query detail"),
            source_code=_str_field(data, "sourceCode", "query detail"),
            intent=_str_field(data, "intent", "query detail"),
            description=_str_field(data, "description", "query detail"),
            source_code_sha=_str_field(data, "sourceCodeSha", "query detail"),
            commit_count=_int_field(data, "commitCount", "query detail"),
            last_commit=CommitInfo.from_dict(data.get("lastCommit")),
            first_commit=CommitInfo.from_dict(data.get("firstCommit")),
            repository=repository,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queryId": self.query_id,
            "path": self.path,
            "sourceCode": self.source_code,
            "intent": self.intent,
            "description": self.description,
            "sourceCodeSha": self.source_code_sha,
            "commitCount": self.commit_count,
            "lastCommit": self.last_commit.to_dict(),
            "firstCommit": self.first_commit.to_dict(),
            "repository": self.repository.value if self.repository else None,
        }


@dataclass
class SyncResult:
    """Outcome of syncing one repository."""

    repository: Repository
    items: List[QueryDetail]
    skipped_count: int = 0
    failed_count: int = 0
    first_failure_example: Optional[str] = None

    @property
    def fetched_count(self) -> int:
        return len(self.items)


# queryID -> QueryDetail, one entry per distinct query across both repositories
MergedCatalog = Dict[str, QueryDetail]


# ---------------------------------------------------------------------------
# Plain platform resources (networks, devices, snapshots, locations, NQE runs)
# ---------------------------------------------------------------------------


@dataclass
class Network:
    id: str
    name: str
    org_id: str = ""
    creator: str = ""
    created_at: int = 0

    @classmethod
    def from_dict(cls, raw: object) -> "Network":
        data = _require_mapping(raw, "network")
        return cls(
            id=_str_field(data, "id", "network"),
            name=_str_field(data, "name", "network"),
            org_id=_str_field(data, "orgId", "network"),
            creator=_str_field(data, "creator", "network"),
            created_at=_int_field(data, "createdAt", "network"),
        )


@dataclass
class Device:
    name: str
    type: str = ""
    vendor: str = ""
    platform: str = ""
    model: str = ""
    os_version: str = ""
    management_ips: List[str] = field(default_factory=list)
    location_id: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "Device":
        data = _require_mapping(raw, "device")
        ips = data.get("managementIps") or []
        if not isinstance(ips, list):
            raise DecodeError("failed to decode device: 'managementIps' must be a list")
        return cls(
            name=_str_field(data, "name", "device"),
            type=_str_field(data, "type", "device"),
            vendor=_str_field(data, "vendor", "device"),
            platform=_str_field(data, "platform", "device"),
            model=_str_field(data, "model", "device"),
            os_version=_str_field(data, "osVersion", "device"),
            management_ips=[str(ip) for ip in ips],
            location_id=_str_field(data, "locationId", "device"),
        )


@dataclass
class DeviceList:
    devices: List[Device]
    total_count: int


@dataclass
class Snapshot:
    id: str
    state: str = ""
    processing_trigger: str = ""
    total_devices: int = 0
    creation_date_millis: int = 0
    processed_at_millis: int = 0
    is_draft: bool = False

    @classmethod
    def from_dict(cls, raw: object) -> "Snapshot":
        data = _require_mapping(raw, "snapshot")
        return cls(
            id=_str_field(data, "id", "snapshot"),
            state=_str_field(data, "state", "snapshot"),
            processing_trigger=_str_field(data, "processingTrigger", "snapshot"),
            total_devices=_int_field(data, "totalDevices", "snapshot"),
            creation_date_millis=_int_field(data, "creationDateMillis", "snapshot"),
            processed_at_millis=_int_field(data, "processedAtMillis", "snapshot"),
            is_draft=bool(data.get("isDraft", False)),
        )


@dataclass
class Location:
    id: str
    name: str
    lat: float = 0.0
    lng: float = 0.0
    city: str = ""
    admin_division: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "Location":
        data = _require_mapping(raw, "location")
        try:
            lat = float(data.get("lat") or 0.0)
            lng = float(data.get("lng") or 0.0)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"failed to decode location: bad coordinates in {data!r}") from exc
        return cls(
            id=_str_field(data, "id", "location"),
            name=_str_field(data, "name", "location"),
            lat=lat,
            lng=lng,
            city=_str_field(data, "city", "location"),
            admin_division=_str_field(data, "adminDivision", "location"),
            country=_str_field(data, "country", "location"),
        )


@dataclass
class LocationChange:
    """
    Body for creating, bulk-patching or partially updating a location.

    Fields left as None are omitted from the request body.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None
    admin_division: Optional[str] = None
    country: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "id": self.id,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "city": self.city,
            "adminDivision": self.admin_division,
            "country": self.country,
        }
        return {k: v for k, v in payload.items() if v is not None}


@dataclass
class NqeRunResult:
    snapshot_id: str
    items: List[Dict[str, Any]]

    @classmethod
    def from_dict(cls, raw: object) -> "NqeRunResult":
        data = _require_mapping(raw, "NQE run result")
        items = data.get("items") or []
        if not isinstance(items, list):
            raise DecodeError("failed to decode NQE run result: 'items' must be a list")
        return cls(snapshot_id=_str_field(data, "snapshotId", "NQE run result"), items=items)


# ---------------------------------------------------------------------------
# Path search and NQE diffs
# ---------------------------------------------------------------------------


def _list_field(raw: Dict[str, Any], key: str, what: str) -> List[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"failed to decode {what}: {key!r} must be a list, got {value!r}")
    return value


def _drop_unset(payload: Dict[str, Any]) -> Dict[str, Any]:
    # None, "", 0 and False all mean "let the server pick"
    return {k: v for k, v in payload.items() if v not in (None, "", 0, False)}


@dataclass
class PathSearch:
    """
    One path search: where traffic enters, where it is headed and how hard
    the server should look. Only dst_ip is required.
    """

    dst_ip: str
    src_ip: str = ""
    from_device: str = ""
    intent: str = ""
    ip_proto: Optional[int] = None
    src_port: str = ""
    dst_port: str = ""
    include_network_functions: bool = False
    max_candidates: int = 0
    max_results: int = 0
    max_return_path_results: int = 0
    max_seconds: int = 0
    snapshot_id: str = ""

    def to_params(self) -> Dict[str, Any]:
        if not self.dst_ip:
            raise RuntimeError("dst_ip is required for a path search")
        params = _drop_unset(
            {
                "dstIp": self.dst_ip,
                "from": self.from_device,
                "srcIp": self.src_ip,
                "intent": self.intent,
                "srcPort": self.src_port,
                "dstPort": self.dst_port,
                "includeNetworkFunctions": self.include_network_functions,
                "maxCandidates": self.max_candidates,
                "maxResults": self.max_results,
                "maxReturnPathResults": self.max_return_path_results,
                "maxSeconds": self.max_seconds,
                "snapshotId": self.snapshot_id,
            }
        )
        # protocol 0 (HOPOPT) is a valid value, so only None means unset
        if self.ip_proto is not None:
            params["ipProto"] = self.ip_proto
        if self.include_network_functions:
            params["includeNetworkFunctions"] = "true"
        return params


@dataclass
class PathHop:
    device: str
    action: str = ""
    interface: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: object) -> "PathHop":
        data = _require_mapping(raw, "path hop")
        details = data.get("details") or {}
        if not isinstance(details, dict):
            raise DecodeError("failed to decode path hop: 'details' must be an object")
        return cls(
            device=_str_field(data, "device", "path hop"),
            action=_str_field(data, "action", "path hop"),
            interface=_str_field(data, "interface", "path hop"),
            details=details,
        )


@dataclass
class NetworkPath:
    hops: List[PathHop]
    outcome: str = ""
    outcome_type: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "NetworkPath":
        data = _require_mapping(raw, "path")
        return cls(
            hops=[PathHop.from_dict(h) for h in _list_field(data, "hops", "path")],
            outcome=_str_field(data, "outcome", "path"),
            outcome_type=_str_field(data, "outcomeType", "path"),
        )


@dataclass
class PathSearchResult:
    paths: List[NetworkPath]
    return_paths: List[NetworkPath] = field(default_factory=list)
    snapshot_id: str = ""
    search_time_ms: int = 0
    num_candidates_found: int = 0
    unrecognized_values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: object) -> "PathSearchResult":
        data = _require_mapping(raw, "path search result")
        unrecognized = data.get("unrecognizedValues") or {}
        if not isinstance(unrecognized, dict):
            raise DecodeError("failed to decode path search result: 'unrecognizedValues' must be an object")
        return cls(
            paths=[NetworkPath.from_dict(p) for p in _list_field(data, "paths", "path search result")],
            return_paths=[NetworkPath.from_dict(p) for p in _list_field(data, "returnPaths", "path search result")],
            snapshot_id=_str_field(data, "snapshotId", "path search result"),
            search_time_ms=_int_field(data, "searchTimeMs", "path search result"),
            num_candidates_found=_int_field(data, "numCandidatesFound", "path search result"),
            unrecognized_values=unrecognized,
        )


@dataclass
class PathSearchBatch:
    """Body of a bulk path search; the limits apply to every query in it."""

    queries: List[PathSearch]
    intent: str = ""
    max_candidates: int = 0
    max_results: int = 0
    max_return_path_results: int = 0
    max_seconds: int = 0
    max_overall_seconds: int = 0
    include_network_functions: bool = False

    def to_payload(self) -> Dict[str, Any]:
        queries = []
        for q in self.queries:
            entry = q.to_params()
            # per-query snapshots are not supported in bulk; it is a URL parameter
            entry.pop("snapshotId", None)
            if q.include_network_functions:
                entry["includeNetworkFunctions"] = True
            queries.append(entry)
        payload = _drop_unset(
            {
                "intent": self.intent,
                "maxCandidates": self.max_candidates,
                "maxResults": self.max_results,
                "maxReturnPathResults": self.max_return_path_results,
                "maxSeconds": self.max_seconds,
                "maxOverallSeconds": self.max_overall_seconds,
                "includeNetworkFunctions": self.include_network_functions,
            }
        )
        payload["queries"] = queries
        return payload


@dataclass
class BulkHop:
    device_name: str
    device_type: str = ""
    ingress_interface: str = ""
    egress_interface: str = ""
    behaviors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: object) -> "BulkHop":
        data = _require_mapping(raw, "bulk hop")
        return cls(
            device_name=_str_field(data, "deviceName", "bulk hop"),
            device_type=_str_field(data, "deviceType", "bulk hop"),
            ingress_interface=_str_field(data, "ingressInterface", "bulk hop"),
            egress_interface=_str_field(data, "egressInterface", "bulk hop"),
            behaviors=[str(b) for b in _list_field(data, "behaviors", "bulk hop")],
        )


@dataclass
class BulkPath:
    hops: List[BulkHop]
    forwarding_outcome: str = ""
    security_outcome: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "BulkPath":
        data = _require_mapping(raw, "bulk path")
        return cls(
            hops=[BulkHop.from_dict(h) for h in _list_field(data, "hops", "bulk path")],
            forwarding_outcome=_str_field(data, "forwardingOutcome", "bulk path"),
            security_outcome=_str_field(data, "securityOutcome", "bulk path"),
        )


@dataclass
class BulkPathInfo:
    paths: List[BulkPath]
    total_hits: int = 0
    total_hits_type: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "BulkPathInfo":
        if raw is None:
            return cls(paths=[])
        data = _require_mapping(raw, "bulk path info")
        hits = _require_mapping(data.get("totalHits") or {}, "bulk path info totalHits")
        return cls(
            paths=[BulkPath.from_dict(p) for p in _list_field(data, "paths", "bulk path info")],
            total_hits=_int_field(hits, "value", "bulk path info totalHits"),
            total_hits_type=_str_field(hits, "type", "bulk path info totalHits"),
        )


@dataclass
class PathSearchBatchResult:
    """One answer of a bulk path search, in the order the queries were sent."""

    info: BulkPathInfo
    return_path_info: BulkPathInfo
    dst_ip_location_type: str = ""
    timed_out: bool = False
    query_url: str = ""

    @classmethod
    def from_dict(cls, raw: object) -> "PathSearchBatchResult":
        data = _require_mapping(raw, "bulk path search result")
        return cls(
            info=BulkPathInfo.from_dict(data.get("info")),
            return_path_info=BulkPathInfo.from_dict(data.get("returnPathInfo")),
            dst_ip_location_type=_str_field(data, "dstIpLocationType", "bulk path search result"),
            timed_out=bool(data.get("timedOut", False)),
            query_url=_str_field(data, "queryUrl", "bulk path search result"),
        )


@dataclass
class NqeDiffRequest:
    """Compare one stored query between two snapshots."""

    query_id: str
    commit_id: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"queryId": self.query_id}
        if self.commit_id:
            payload["commitId"] = self.commit_id
        if self.options is not None:
            payload["options"] = self.options
        if self.parameters is not None:
            payload["parameters"] = self.parameters
        return payload


@dataclass
class NqeDiffResult:
    total_num_values: int
    rows: List[Dict[str, Any]]

    @classmethod
    def from_dict(cls, raw: object) -> "NqeDiffResult":
        data = _require_mapping(raw, "NQE diff result")
        return cls(
            total_num_values=_int_field(data, "totalNumValues", "NQE diff result"),
            rows=_list_field(data, "rows", "NQE diff result"),
        )
