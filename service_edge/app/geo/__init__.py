"""Nearest-node lookup."""

from .locator import GeoLocator, Node, NodeDistance, load_nodes

__all__ = ["GeoLocator", "Node", "NodeDistance", "load_nodes"]
