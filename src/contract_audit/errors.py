"""Exception hierarchy shared by the audit pipeline."""

from __future__ import annotations


class ContractAuditError(RuntimeError):
    """Base class for errors that abort an audit run or one of its stages."""


class WorkspaceError(ContractAuditError):
    """Raised when an output directory cannot be created or listed."""


class DiscoveryError(ContractAuditError):
    """Raised when the contract source root cannot be traversed."""


class ToolManifestError(ContractAuditError):
    """Raised when tool manifests cannot be loaded or are invalid."""


class StructuredParseError(ContractAuditError):
    """Raised when a structured findings artifact does not match the expected shape."""


__all__ = [
    "ContractAuditError",
    "DiscoveryError",
    "StructuredParseError",
    "ToolManifestError",
    "WorkspaceError",
]
