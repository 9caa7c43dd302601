"""Binding reconciliation against a host input-binding registry."""

from .reconciler import CATEGORY_PRIORITY, BindingReconciler, ReconcileResult
from .registry import (
    BindingHandle,
    BindingRegistry,
    CategoryIndex,
    CategoryOrderIndex,
    InMemoryBindingRegistry,
    RegistryImmutable,
)

__all__ = [
    "CATEGORY_PRIORITY",
    "BindingHandle",
    "BindingReconciler",
    "BindingRegistry",
    "CategoryIndex",
    "CategoryOrderIndex",
    "InMemoryBindingRegistry",
    "ReconcileResult",
    "RegistryImmutable",
]
