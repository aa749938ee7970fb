# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the staking ledger.
"""

from .metrics import metrics_registry, update_pool_metrics, record_call, record_rejection

__all__ = ['metrics_registry', 'update_pool_metrics', 'record_call', 'record_rejection']
