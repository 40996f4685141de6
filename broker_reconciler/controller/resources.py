"""Desired child objects of a RedisBroker.

Every function here is a pure function of the broker and the controller
configuration.
"""

from broker_reconciler.config import ControllerConfig
from broker_reconciler.exceptions import PermanentConfigurationError
from broker_reconciler.lifecycle import (
    BROKER_DEPLOYMENT_READY,
    REDIS_DEPLOYMENT_READY,
)
from broker_reconciler.manifest import Deployment, RedisBroker, Service, ServiceAccount

REDIS_COMPONENT = "redis"
BROKER_COMPONENT = "broker"
BROKER_SERVICE_PORT = 80
REDIS_URL_SCHEMES = ("redis://", "rediss://")


def _name(broker: RedisBroker, component: str) -> str:
    return f"{broker.name}-rb-{component}"


def labels(broker: RedisBroker, component: str) -> dict[str, str]:
    """Labels identifying the children of a broker."""
    return {
        "app.kubernetes.io/name": "redis-broker",
        "app.kubernetes.io/instance": broker.name,
        "app.kubernetes.io/component": component,
        "app.kubernetes.io/part-of": "triggermesh",
        "app.kubernetes.io/managed-by": "broker-reconciler",
    }


def validate_spec(broker: RedisBroker) -> None:
    """Check that the broker spec can produce a valid set of children.

    Raises:
        PermanentConfigurationError: If the spec can never be realized.
    """
    redis = broker.spec.redis
    if redis.connection_url is not None and not redis.connection_url.startswith(
        REDIS_URL_SCHEMES
    ):
        raise PermanentConfigurationError(
            "InvalidRedisURL",
            f"Redis connection URL {redis.connection_url!r} must use one of {', '.join(REDIS_URL_SCHEMES)}",
            REDIS_DEPLOYMENT_READY,
        )
    if redis.stream_max_len < 0:
        raise PermanentConfigurationError(
            "InvalidStreamMaxLen",
            f"Redis stream max length must not be negative, got {redis.stream_max_len}",
            REDIS_DEPLOYMENT_READY,
        )
    spec = broker.spec.broker
    if not 0 < spec.port < 65536:
        raise PermanentConfigurationError(
            "InvalidPort",
            f"Broker port must be between 1 and 65535, got {spec.port}",
            BROKER_DEPLOYMENT_READY,
        )
    if spec.replicas < 0:
        raise PermanentConfigurationError(
            "InvalidReplicas",
            f"Broker replicas must not be negative, got {spec.replicas}",
            BROKER_DEPLOYMENT_READY,
        )


def redis_deployment(broker: RedisBroker, config: ControllerConfig) -> Deployment:
    return Deployment(
        name=_name(broker, REDIS_COMPONENT),
        namespace=broker.namespace,
        owner_references=[broker.owner_reference()],
        labels=labels(broker, REDIS_COMPONENT),
        image=config.redis_image,
        replicas=1,
        container_port=config.redis_port,
    )


def redis_service(broker: RedisBroker, config: ControllerConfig) -> Service:
    return Service(
        name=_name(broker, REDIS_COMPONENT),
        namespace=broker.namespace,
        owner_references=[broker.owner_reference()],
        labels=labels(broker, REDIS_COMPONENT),
        selector=labels(broker, REDIS_COMPONENT),
        port=config.redis_port,
        target_port=config.redis_port,
    )


def broker_service_account(broker: RedisBroker) -> ServiceAccount:
    return ServiceAccount(
        name=_name(broker, BROKER_COMPONENT),
        namespace=broker.namespace,
        owner_references=[broker.owner_reference()],
        labels=labels(broker, BROKER_COMPONENT),
    )


def redis_address(broker: RedisBroker, config: ControllerConfig) -> str:
    """The Redis address the broker workload connects to."""
    if broker.spec.redis.connection_url:
        return broker.spec.redis.connection_url
    host = f"{_name(broker, REDIS_COMPONENT)}.{broker.namespace}.svc.{config.cluster_domain}"
    return f"redis://{host}:{config.redis_port}"


def broker_deployment(broker: RedisBroker, config: ControllerConfig) -> Deployment:
    spec = broker.spec
    return Deployment(
        name=_name(broker, BROKER_COMPONENT),
        namespace=broker.namespace,
        owner_references=[broker.owner_reference()],
        labels=labels(broker, BROKER_COMPONENT),
        image=spec.broker.image or config.broker_image,
        replicas=spec.broker.replicas,
        args=["start"],
        env={
            "REDIS_ADDRESS": redis_address(broker, config),
            "REDIS_STREAM": spec.redis.stream or f"{broker.namespace}.{broker.name}",
            "REDIS_STREAM_MAX_LEN": str(spec.redis.stream_max_len),
            "BROKER_PORT": str(spec.broker.port),
            "LOG_LEVEL": spec.broker.log_level,
            "SERVICE_ACCOUNT": _name(broker, BROKER_COMPONENT),
        },
        container_port=spec.broker.port,
    )


def broker_service(broker: RedisBroker) -> Service:
    return Service(
        name=_name(broker, BROKER_COMPONENT),
        namespace=broker.namespace,
        owner_references=[broker.owner_reference()],
        labels=labels(broker, BROKER_COMPONENT),
        selector=labels(broker, BROKER_COMPONENT),
        port=BROKER_SERVICE_PORT,
        target_port=broker.spec.broker.port,
    )


def broker_address(service: Service, config: ControllerConfig) -> str | None:
    """The URL the broker service is reachable at, if it exposes a port."""
    if service.port is None:
        return None
    host = f"{service.name}.{service.namespace}.svc.{config.cluster_domain}"
    if service.port == BROKER_SERVICE_PORT:
        return f"http://{host}"
    return f"http://{host}:{service.port}"
