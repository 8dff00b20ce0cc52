"""Entry point for ``python -m openapi_codegen``."""

from .cli import main

raise SystemExit(main())
