from __future__ import annotations

from healthvault.core.functions.client import EdgeFunctionClient, EdgeFunctionConfig
from healthvault.core.settings import get_settings


def get_edge_function_client() -> EdgeFunctionClient | None:
    """
    Dependency provider for EdgeFunctionClient.

    Returns None when the functions host is not configured so routes can answer 502.
    """

    settings = get_settings()
    if not settings.functions_base_url:
        return None

    config = EdgeFunctionConfig(
        base_url=settings.functions_base_url,
        api_key=settings.functions_api_key,
        timeout_seconds=float(settings.functions_timeout_seconds),
    )
    return EdgeFunctionClient(config=config)
