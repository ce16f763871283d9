"""Release-build invokers."""

from .base import BuildInvoker
from .cargo import CargoBuildInvoker

__all__ = ["BuildInvoker", "CargoBuildInvoker"]
