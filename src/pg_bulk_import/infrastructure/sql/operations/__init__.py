"""SQL operation builders."""

from .reconcile import ReconcileBuilder

__all__ = ["ReconcileBuilder"]
