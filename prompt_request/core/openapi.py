"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- Bearer API key security scheme with per-path overrides

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI


def _public_operations(api_prefix: str) -> set[tuple[str, str]]:
    """Operations reachable without a credential, as (method, path)."""
    return {
        ("get", "/health"),
        ("get", "/"),
        ("get", "/{request_uuid}"),
        ("post", f"{api_prefix}/accounts"),
    }


def apply_openapi_customizations(app: FastAPI, api_prefix: str = "") -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security.

    - Injects components.securitySchemes for ``Authorization: Bearer <api_key>``
    - Marks all operations as requiring the key by default, then exempts the
      public reader, account creation and health by setting ``security: []``
    """

    original_openapi = app.openapi
    public = _public_operations(api_prefix)

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerApiKey",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "API key returned by POST /accounts, sent as a bearer token.",
            },
        )

        schema.setdefault("security", [{"BearerApiKey": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Accounts", "description": "Anonymous account creation."},
            {"name": "Requests", "description": "Revisioned documents owned by the caller."},
            {"name": "Public", "description": "Unauthenticated reads by document UUID."},
            {"name": "Health", "description": "Liveness check."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method, method_obj in methods.items():
                if isinstance(method_obj, dict) and (method, path) in public:
                    method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
