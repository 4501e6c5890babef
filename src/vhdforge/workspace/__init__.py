"""
VHDForge Workspace - node lifecycle and scan/reconcile.
"""

from vhdforge.workspace.reconciler import WorkspaceReconciler
from vhdforge.workspace.scan import normalize_path

__all__ = ["WorkspaceReconciler", "normalize_path"]
