"""Representation of the objects watched and managed by the broker controller.

Objects are parsed from kubernetes style documents into dataclasses so that
the rest of the library can work with typed values. Only the fields the
controller reads or writes are kept.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "ConditionStatus",
    "Condition",
    "OwnerReference",
    "BrokerStatus",
    "RedisBroker",
    "RedisBrokerSpec",
    "Deployment",
    "Service",
    "ServiceAccount",
    "Trigger",
    "KReference",
    "is_supported_kind",
    "parse_raw_obj",
]

_LOGGER = logging.getLogger(__name__)


EVENTING_GROUP = "eventing.triggermesh.io"
EVENTING_API_VERSION = f"{EVENTING_GROUP}/v1alpha1"
REDIS_BROKER_KIND = "RedisBroker"
TRIGGER_KIND = "Trigger"
DEPLOYMENT_KIND = "Deployment"
SERVICE_KIND = "Service"
SERVICE_ACCOUNT_KIND = "ServiceAccount"
DEFAULT_NAMESPACE = "default"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


def _parse_metadata(cls: type, doc: dict[str, Any]) -> tuple[str, str, dict[str, Any]]:
    """Return the name, namespace and metadata of a document."""
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not (name := metadata.get("name")):
        raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
    return name, metadata.get("namespace", DEFAULT_NAMESPACE), metadata


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    def compact_dict(self) -> dict[str, Any]:
        """Return a compact dictionary representation of the object."""
        return self.to_dict()

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized manifest."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class ConditionStatus(StrEnum):
    """Tri-state status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition(BaseManifest):
    """A named tri-state fact about a resource."""

    type: str
    """The type of the condition e.g. Ready."""

    status: ConditionStatus = ConditionStatus.UNKNOWN
    """Whether the condition holds."""

    reason: str = ""
    """A short machine readable reason for the last transition."""

    message: str = ""
    """A human readable description of the last transition."""

    last_transition_time: datetime | None = None
    """When the status last changed."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Condition":
        """Parse a condition from a kubernetes status condition."""
        if not (cond_type := doc.get("type")):
            raise InputException(f"Invalid {cls.__name__} missing type: {doc}")
        try:
            status = ConditionStatus(str(doc.get("status", ConditionStatus.UNKNOWN)))
        except ValueError as err:
            raise InputException(f"Invalid {cls.__name__} status: {doc}") from err
        last_transition_time = None
        if timestamp := doc.get("lastTransitionTime"):
            if isinstance(timestamp, datetime):
                last_transition_time = timestamp
            else:
                try:
                    last_transition_time = datetime.fromisoformat(
                        str(timestamp).replace("Z", "+00:00")
                    )
                except ValueError as err:
                    raise InputException(
                        f"Invalid {cls.__name__} lastTransitionTime: {doc}"
                    ) from err
        return cls(
            type=cond_type,
            status=status,
            reason=doc.get("reason", ""),
            message=doc.get("message", ""),
            last_transition_time=last_transition_time,
        )


def _parse_conditions(doc: dict[str, Any]) -> list[Condition]:
    status = doc.get("status") or {}
    return [Condition.parse_doc(cond) for cond in status.get("conditions") or ()]


@dataclass
class OwnerReference(BaseManifest):
    """Reference from a child object to the object that owns it."""

    api_version: str
    kind: str
    name: str
    uid: str | None = None
    controller: bool = False

    @property
    def group(self) -> str:
        """Return the API group of the owner, empty for the core group."""
        if "/" not in self.api_version:
            return ""
        return self.api_version.split("/", 1)[0]

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "OwnerReference":
        """Parse an owner reference from object metadata."""
        for key in ("apiVersion", "kind", "name"):
            if not doc.get(key):
                raise InputException(f"Invalid {cls.__name__} missing {key}: {doc}")
        return cls(
            api_version=doc["apiVersion"],
            kind=doc["kind"],
            name=doc["name"],
            uid=doc.get("uid"),
            controller=bool(doc.get("controller", False)),
        )


@dataclass
class BrokerStatus(BaseManifest):
    """Observed state of a RedisBroker."""

    conditions: list[Condition] = field(default_factory=list)
    """The conditions of the broker, at most one per type."""

    observed_generation: int = 0
    """The generation of the spec that was last reconciled."""

    address: str | None = None
    """The URL where the broker accepts events, when resolvable."""

    def get_conditions(self) -> list[Condition]:
        """Return the mutable list of conditions."""
        return self.conditions

    def get_observed_generation(self) -> int:
        return self.observed_generation


@dataclass
class RedisSpec(BaseManifest):
    """Redis backend settings of a RedisBroker."""

    connection_url: str | None = None
    """URL of an external Redis. When unset a Redis is deployed for the broker."""

    stream: str | None = None
    """Name of the Redis stream, defaults to the broker namespaced name."""

    stream_max_len: int = 0
    """Maximum number of entries in the stream, 0 means unlimited."""


@dataclass
class BrokerSpec(BaseManifest):
    """Broker workload settings of a RedisBroker."""

    port: int = 8080
    image: str | None = None
    replicas: int = 1
    log_level: str = "info"


@dataclass
class RedisBrokerSpec(BaseManifest):
    """Desired state of a RedisBroker."""

    redis: RedisSpec = field(default_factory=RedisSpec)
    broker: BrokerSpec = field(default_factory=BrokerSpec)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "RedisBrokerSpec":
        """Parse the spec section of a RedisBroker."""
        redis = doc.get("redis") or {}
        broker = doc.get("broker") or {}
        connection = redis.get("connection") or {}
        try:
            return cls(
                redis=RedisSpec(
                    connection_url=connection.get("url"),
                    stream=redis.get("stream"),
                    stream_max_len=int(redis.get("streamMaxLen", 0)),
                ),
                broker=BrokerSpec(
                    port=int(broker.get("port", 8080)),
                    image=broker.get("image"),
                    replicas=int(broker.get("replicas", 1)),
                    log_level=broker.get("logLevel", "info"),
                ),
            )
        except (TypeError, ValueError) as err:
            raise InputException(f"Invalid {cls.__name__}: {doc}") from err


@dataclass
class RedisBroker(BaseManifest):
    """The managed resource: a broker backed by a Redis stream."""

    kind: ClassVar[str] = REDIS_BROKER_KIND
    api_version: ClassVar[str] = EVENTING_API_VERSION
    group: ClassVar[str] = EVENTING_GROUP

    name: str
    namespace: str
    uid: str | None = None
    generation: int = 0
    spec: RedisBrokerSpec = field(default_factory=RedisBrokerSpec)
    status: BrokerStatus = field(default_factory=BrokerStatus)

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(self.kind, self.namespace, self.name)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "RedisBroker":
        """Parse a RedisBroker from a kubernetes resource object."""
        _check_version(doc, EVENTING_GROUP)
        name, namespace, metadata = _parse_metadata(cls, doc)
        status_doc = doc.get("status") or {}
        address = (status_doc.get("address") or {}).get("url")
        return cls(
            name=name,
            namespace=namespace,
            uid=metadata.get("uid"),
            generation=int(metadata.get("generation", 0)),
            spec=RedisBrokerSpec.parse_doc(doc.get("spec") or {}),
            status=BrokerStatus(
                conditions=_parse_conditions(doc),
                observed_generation=int(status_doc.get("observedGeneration", 0)),
                address=address,
            ),
        )

    def owner_reference(self) -> OwnerReference:
        """Return a controlling owner reference pointing at this broker."""
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.name,
            uid=self.uid,
            controller=True,
        )


@dataclass
class OwnedManifest(BaseManifest):
    """Base class for objects that may be owned by another object."""

    def controller_of(self) -> OwnerReference | None:
        """Return the controlling owner reference, if any."""
        for ref in getattr(self, "owner_references", None) or ():
            if ref.controller:
                return ref
        return None


def _parse_owner_references(metadata: dict[str, Any]) -> list[OwnerReference]:
    return [
        OwnerReference.parse_doc(ref) for ref in metadata.get("ownerReferences") or ()
    ]


@dataclass
class Deployment(OwnedManifest):
    """A compute workload child resource."""

    kind: ClassVar[str] = DEPLOYMENT_KIND
    api_version: ClassVar[str] = "apps/v1"

    name: str
    namespace: str
    owner_references: list[OwnerReference] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    image: str | None = None
    replicas: int = 1
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    container_port: int | None = None
    conditions: list[Condition] = field(default_factory=list)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Deployment":
        """Parse a Deployment from a kubernetes resource object."""
        _check_version(doc, cls.api_version)
        name, namespace, metadata = _parse_metadata(cls, doc)
        spec = doc.get("spec") or {}
        containers = ((spec.get("template") or {}).get("spec") or {}).get(
            "containers"
        ) or [{}]
        container = containers[0]
        ports = container.get("ports") or [{}]
        try:
            env = {
                item["name"]: item.get("value", "") for item in container.get("env") or ()
            }
            replicas = int(spec.get("replicas", 1))
        except (KeyError, TypeError, ValueError) as err:
            raise InputException(f"Invalid {cls.__name__} container: {doc}") from err
        return cls(
            name=name,
            namespace=namespace,
            owner_references=_parse_owner_references(metadata),
            labels=metadata.get("labels") or {},
            image=container.get("image"),
            replicas=replicas,
            args=list(container.get("args") or ()),
            env=env,
            container_port=ports[0].get("containerPort"),
            conditions=_parse_conditions(doc),
        )


@dataclass
class Service(OwnedManifest):
    """A network exposed child resource."""

    kind: ClassVar[str] = SERVICE_KIND
    api_version: ClassVar[str] = "v1"

    name: str
    namespace: str
    owner_references: list[OwnerReference] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    selector: dict[str, str] = field(default_factory=dict)
    port: int | None = None
    target_port: int | None = None
    cluster_ip: str | None = None
    conditions: list[Condition] = field(default_factory=list)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Service":
        """Parse a Service from a kubernetes resource object."""
        _check_version(doc, cls.api_version)
        name, namespace, metadata = _parse_metadata(cls, doc)
        spec = doc.get("spec") or {}
        ports = spec.get("ports") or [{}]
        return cls(
            name=name,
            namespace=namespace,
            owner_references=_parse_owner_references(metadata),
            labels=metadata.get("labels") or {},
            selector=spec.get("selector") or {},
            port=ports[0].get("port"),
            target_port=ports[0].get("targetPort"),
            cluster_ip=spec.get("clusterIP"),
            conditions=_parse_conditions(doc),
        )


@dataclass
class ServiceAccount(OwnedManifest):
    """The identity the broker workload runs as."""

    kind: ClassVar[str] = SERVICE_ACCOUNT_KIND
    api_version: ClassVar[str] = "v1"

    name: str
    namespace: str
    owner_references: list[OwnerReference] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ServiceAccount":
        """Parse a ServiceAccount from a kubernetes resource object."""
        _check_version(doc, cls.api_version)
        name, namespace, metadata = _parse_metadata(cls, doc)
        return cls(
            name=name,
            namespace=namespace,
            owner_references=_parse_owner_references(metadata),
            labels=metadata.get("labels") or {},
        )


@dataclass
class KReference(BaseManifest):
    """A reference from one object to another by group, kind and name."""

    kind: str
    name: str
    group: str = ""


@dataclass
class Trigger(BaseManifest):
    """A referencing resource that subscribes to events of a broker."""

    kind: ClassVar[str] = TRIGGER_KIND
    api_version: ClassVar[str] = EVENTING_API_VERSION

    name: str
    namespace: str
    broker: KReference
    target: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Trigger":
        """Parse a Trigger from a kubernetes resource object."""
        _check_version(doc, EVENTING_GROUP)
        name, namespace, _ = _parse_metadata(cls, doc)
        spec = doc.get("spec") or {}
        if not (broker := spec.get("broker")):
            raise InputException(f"Invalid {cls.__name__} missing spec.broker: {doc}")
        if not (broker_name := broker.get("name")):
            raise InputException(
                f"Invalid {cls.__name__} missing spec.broker.name: {doc}"
            )
        target = (spec.get("target") or {}).get("uri")
        return cls(
            name=name,
            namespace=namespace,
            broker=KReference(
                kind=broker.get("kind", ""),
                name=broker_name,
                group=broker.get("group", ""),
            ),
            target=target,
        )


_PARSERS: dict[str, Any] = {
    REDIS_BROKER_KIND: RedisBroker,
    TRIGGER_KIND: Trigger,
    DEPLOYMENT_KIND: Deployment,
    SERVICE_KIND: Service,
    SERVICE_ACCOUNT_KIND: ServiceAccount,
}


def is_supported_kind(kind: str) -> bool:
    """Return True if documents of the kind can be parsed."""
    return isinstance(kind, str) and kind in _PARSERS


def parse_raw_obj(obj: dict[str, Any]) -> BaseManifest:
    """Parse a raw kubernetes object into a BaseManifest."""
    if not (kind := obj.get("kind")):
        raise InputException(f"Invalid object missing kind: {obj}")
    if (cls := _PARSERS.get(kind)) is None:
        raise InputException(f"Unsupported object kind {kind}")
    _LOGGER.debug("Parsing %s document", kind)
    try:
        return cls.parse_doc(obj)  # type: ignore[no-any-return]
    except (AttributeError, KeyError, TypeError, ValueError) as err:
        raise InputException(f"Invalid {kind} document: {err!r}") from err
