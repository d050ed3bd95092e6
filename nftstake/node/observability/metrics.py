# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking metrics in Prometheus format.

Metrics:
- Staked units, staker count, pending withdrawals
- Current reward rate and number of rate changes
- Operations processed / rejected, rewards paid out
"""

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.staker import Staker

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# LEDGER METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked_units = Gauge(
    'nftstake_total_staked_units',
    'Collateral items currently staked',
    registry=metrics_registry
)

stakers_total = Gauge(
    'nftstake_stakers_total',
    'Accounts with at least one staked item',
    registry=metrics_registry
)

pending_withdrawals = Gauge(
    'nftstake_pending_withdrawals',
    'Items waiting for the unbonding period to elapse',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# SCHEDULE METRICS
# ═══════════════════════════════════════════════════════════════════

reward_per_block = Gauge(
    'nftstake_reward_per_block',
    'Current reward rate per staked item per block',
    registry=metrics_registry
)

rate_changes_total = Gauge(
    'nftstake_rate_changes_total',
    'Entries in the reward rate schedule',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'nftstake_operations_total',
    'Successful staking operations',
    ['operation'],
    registry=metrics_registry
)

operations_rejected_total = Counter(
    'nftstake_operations_rejected_total',
    'Rejected staking operations',
    ['operation', 'error'],
    registry=metrics_registry
)

rewards_claimed_total = Counter(
    'nftstake_rewards_claimed_total',
    'Reward units paid out to stakers',
    registry=metrics_registry
)

event_listener_errors_total = Counter(
    'nftstake_event_listener_errors_total',
    'Event listeners that raised while handling an event',
    ['event'],
    registry=metrics_registry
)


def record_operation(operation: str):
    operations_total.labels(operation=operation).inc()


def record_rejection(operation: str, error_code: str):
    operations_rejected_total.labels(operation=operation, error=error_code).inc()


def record_claim(amount: int):
    rewards_claimed_total.inc(amount)


def record_listener_error(event: str):
    event_listener_errors_total.labels(event=event).inc()


def update_metrics(staker: 'Staker'):
    """
    Refresh gauges from current staker state.

    Args:
        staker: Staker instance
    """
    entries = staker.ledger.entries()
    total_staked_units.set(sum(e.staked_units for e in entries))
    stakers_total.set(len([e for e in entries if e.staked_units > 0]))
    pending_withdrawals.set(len(staker.withdrawals))
    reward_per_block.set(staker.schedule.current_rate)
    rate_changes_total.set(len(staker.schedule))


def export_metrics() -> bytes:
    return generate_latest(metrics_registry)
