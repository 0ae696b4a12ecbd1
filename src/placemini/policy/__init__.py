"""Policy resolution for canvas parameters."""

from placemini.policy.resolver import DEFAULT_PALETTE, CanvasPolicy, PolicyResolver

__all__ = ["DEFAULT_PALETTE", "CanvasPolicy", "PolicyResolver"]
