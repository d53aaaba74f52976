"""Rendering sandboxes for off-screen receipt pages."""

from billprint.sandbox.base import PrintOptions, RenderingSandbox
from billprint.sandbox.cups import PrinterInfo, list_printers
from billprint.sandbox.http import HttpSandbox
from billprint.sandbox.manager import SandboxManager

__all__ = [
    "PrintOptions",
    "RenderingSandbox",
    "HttpSandbox",
    "SandboxManager",
    "PrinterInfo",
    "list_printers",
]
