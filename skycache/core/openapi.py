"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- API key security scheme (``X-API-Key``), required on admin operations only

Artifact endpoints are public and rate limited, so they carry no security
requirement.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Artifacts",
        "description": "Cached upstream artifacts: listing, descriptors, content and fetch.",
    },
    {
        "name": "Admin",
        "description": "Cache and rate limit maintenance. Requires X-API-Key.",
    },
    {
        "name": "Health",
        "description": "Liveness check.",
    },
]


def _requires_admin_key(path: str, method: str) -> bool:
    if "/admin/" in path:
        return True
    # Clearing a category is the only admin operation under /artifacts
    return path.endswith("/artifacts/{category}") and method == "delete"


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and admin security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_ADMIN_API_KEYS).",
            },
        )

        tags = schema.setdefault("tags", [])
        existing = {tag.get("name") for tag in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing)

        for path, methods in schema.get("paths", {}).items():
            for method, operation in methods.items():
                if isinstance(operation, dict) and _requires_admin_key(path, method):
                    operation["security"] = [{"ApiKeyAuth": []}]

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
