"""Prometheus metrics for pools and claims."""

from collections import defaultdict
from typing import Dict, Optional, Set, Tuple

from prometheus_client import CollectorRegistry, Gauge

from quotapool.api.claim import Claim
from quotapool.api.conditions import ASSIGNED_CONDITION, BOUND_CONDITION, EXHAUSTED_CONDITION
from quotapool.api.pool import Pool
from quotapool.resources.allocation import get_claimed_by_namespace
from quotapool.resources.ledger import ClaimLedger


METRICS_PREFIX = "quotapool"

_Labels = Tuple[str, ...]


def _percentage(part, whole) -> float:
    total = whole.as_approximate_float()
    if total <= 0:
        return 0.0
    return part.as_approximate_float() / total * 100


class PoolRecorder:
    """Gauges describing the allocation state of every pool."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Gauge] = {}
        # Label values set per pool and gauge, so a pool's series can be removed
        self._series: Dict[str, Dict[str, Set[_Labels]]] = defaultdict(lambda: defaultdict(set))
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        resource_labels = ['pool', 'resource']

        self._metrics['pool_limit'] = Gauge(
            f'{METRICS_PREFIX}_pool_limit',
            'Current resource limit for a given resource in a resource pool',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_usage'] = Gauge(
            f'{METRICS_PREFIX}_pool_usage',
            'Current resource usage for a given resource in a resource pool',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_available'] = Gauge(
            f'{METRICS_PREFIX}_pool_available',
            'Current resource availability for a given resource in a resource pool',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_usage_percentage'] = Gauge(
            f'{METRICS_PREFIX}_pool_usage_percentage',
            'Claimed share of the limit for a given resource in a resource pool',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_exhaustion'] = Gauge(
            f'{METRICS_PREFIX}_pool_exhaustion',
            'Amount requested by claims that could not be granted in the last pass',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_exhaustion_percentage'] = Gauge(
            f'{METRICS_PREFIX}_pool_exhaustion_percentage',
            'Ungranted requests as a share of the limit for a given resource',
            resource_labels,
            registry=self.registry
        )

        self._metrics['pool_namespace_usage'] = Gauge(
            f'{METRICS_PREFIX}_pool_namespace_usage',
            'Current resources claimed in a namespace for a given resource in a resource pool',
            ['pool', 'target_namespace', 'resource'],
            registry=self.registry
        )

    def _set(self, metric: str, pool: str, labels: _Labels, value: float) -> None:
        self._metrics[metric].labels(*labels).set(value)
        self._series[pool][metric].add(labels)

    def record(self, pool: Pool) -> None:
        """Replace every series of the pool with its current status."""
        self.forget(pool.name)

        allocation = pool.status.allocation
        for resource, limit in allocation.hard.items():
            labels = (pool.name, resource)
            self._set('pool_limit', pool.name, labels, limit.as_approximate_float())

            claimed = allocation.claimed.get(resource)
            if claimed is None:
                continue
            self._set('pool_usage', pool.name, labels, claimed.as_approximate_float())
            self._set('pool_usage_percentage', pool.name, labels, _percentage(claimed, limit))

            available = allocation.available.get(resource)
            if available is not None:
                self._set('pool_available', pool.name, labels, available.as_approximate_float())

        for resource, exhaustion in pool.status.exhaustions.items():
            labels = (pool.name, resource)
            self._set('pool_exhaustion', pool.name, labels, exhaustion.requesting.as_approximate_float())
            limit = allocation.hard.get(resource)
            if limit is not None:
                self._set(
                    'pool_exhaustion_percentage',
                    pool.name,
                    labels,
                    _percentage(exhaustion.requesting, limit)
                )

        ledger = ClaimLedger.from_status(pool.status.claims)
        for namespace, resources in get_claimed_by_namespace(ledger).items():
            for resource, amount in resources.items():
                self._set(
                    'pool_namespace_usage',
                    pool.name,
                    (pool.name, namespace, resource),
                    amount.as_approximate_float()
                )

    def forget(self, pool: str) -> None:
        """Remove every series recorded for a pool."""
        for metric, series in self._series.pop(pool, {}).items():
            for labels in series:
                self._metrics[metric].remove(*labels)


class ClaimRecorder:
    """Gauges describing the conditions and requests of every claim."""

    conditions = (ASSIGNED_CONDITION, BOUND_CONDITION, EXHAUSTED_CONDITION)

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Gauge] = {}
        self._series: Dict[Tuple[str, str], Dict[str, Set[_Labels]]] = defaultdict(lambda: defaultdict(set))
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self._metrics['claim_condition'] = Gauge(
            f'{METRICS_PREFIX}_claim_condition',
            'The current condition status of a claim',
            ['name', 'target_namespace', 'condition', 'status', 'reason', 'pool'],
            registry=self.registry
        )

        self._metrics['claim_resource'] = Gauge(
            f'{METRICS_PREFIX}_claim_resource',
            'The given amount of resources from the claim',
            ['name', 'target_namespace', 'resource'],
            registry=self.registry
        )

        self._metrics['claim_pool'] = Gauge(
            f'{METRICS_PREFIX}_claim_pool',
            'Pool a claim is assigned to (1 when assigned)',
            ['name', 'target_namespace', 'pool'],
            registry=self.registry
        )

    def _set(self, metric: str, key: Tuple[str, str], labels: _Labels, value: float) -> None:
        self._metrics[metric].labels(*labels).set(value)
        self._series[key][metric].add(labels)

    def record(self, claim: Claim) -> None:
        namespace = claim.namespace or ""
        key = (namespace, claim.name)
        self.forget(namespace, claim.name)

        pool = claim.status.pool.name
        for condition_type in self.conditions:
            condition = claim.status.conditions.get_by_type(condition_type)
            if condition is None:
                continue
            self._set(
                'claim_condition',
                key,
                (claim.name, namespace, condition_type, condition.status.value, condition.reason, pool),
                1.0
            )

        for resource, amount in claim.spec.resource_claims.items():
            self._set('claim_resource', key, (claim.name, namespace, resource), amount.as_approximate_float())

        if pool:
            self._set('claim_pool', key, (claim.name, namespace, pool), 1.0)

    def forget(self, namespace: str, name: str) -> None:
        for metric, series in self._series.pop((namespace, name), {}).items():
            for labels in series:
                self._metrics[metric].remove(*labels)


class MetricsExporter:
    """Prometheus metrics HTTP exporter."""

    def __init__(self, port: int = 9090, registry: Optional[CollectorRegistry] = None):
        self.port = port
        self.registry = registry
        self._server = None

    def start(self):
        """Start Prometheus HTTP server."""
        from prometheus_client import start_http_server

        if self.registry is not None:
            self._server = start_http_server(self.port, registry=self.registry)
        else:
            self._server = start_http_server(self.port)

    def stop(self):
        """Stop Prometheus HTTP server."""
        if self._server:
            server = self._server[0] if isinstance(self._server, tuple) else self._server
            server.shutdown()
            self._server = None
