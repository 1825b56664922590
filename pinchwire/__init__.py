"""Pinchwire: scheduled site governance findings and resilient gateway delivery."""

__version__ = "0.1.0"

from pinchwire.app import Pinchwire  # noqa: E402
from pinchwire.governance.tasks import Finding, Severity  # noqa: E402
from pinchwire.hooks import SUPPRESS  # noqa: E402

__all__ = ["Finding", "Pinchwire", "SUPPRESS", "Severity", "__version__"]
