# threatguard/containers/__init__.py
from threatguard.containers.container import Container

__all__ = ["Container"]
