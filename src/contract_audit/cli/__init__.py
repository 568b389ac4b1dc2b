"""Command-line interface package for the contract audit tooling."""

from .app import (
    DEFAULT_CONTRACT_ROOT,
    DEFAULT_OUTPUT_ROOT,
    build_parser,
    create_composer,
    create_service,
    main,
    render_table,
    run,
)

__all__ = [
    "DEFAULT_CONTRACT_ROOT",
    "DEFAULT_OUTPUT_ROOT",
    "build_parser",
    "create_composer",
    "create_service",
    "main",
    "render_table",
    "run",
]
