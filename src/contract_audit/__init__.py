"""Multi-tool smart contract audit orchestration."""

__version__ = "0.1.0"
