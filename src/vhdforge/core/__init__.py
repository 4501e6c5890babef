"""
VHDForge Core - Backend service layer.

Contains configuration, logging, the error taxonomy, the node store and
the workspace session.
"""

from vhdforge.core.config import VhdForgeConfig
from vhdforge.core.errors import VhdForgeError
from vhdforge.core.logging import get_logger, setup_logging
from vhdforge.core.models import Node, NodeStatus, OperationRecord
from vhdforge.core.session import Workspace
from vhdforge.core.store import NodeStore, SqlNodeStore

__all__ = [
    "VhdForgeConfig",
    "VhdForgeError",
    "get_logger",
    "setup_logging",
    "Node",
    "NodeStatus",
    "OperationRecord",
    "Workspace",
    "NodeStore",
    "SqlNodeStore",
]
