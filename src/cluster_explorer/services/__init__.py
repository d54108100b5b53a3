"""Explorer services."""

from cluster_explorer.services.explorer import ExplorerSession

__all__ = ["ExplorerSession"]
