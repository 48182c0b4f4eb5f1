"""Lint-driven, region-at-a-time repair of OpenAPI documents."""

__version__ = "0.1.0"
