from src.infrastructure.source_gateway.http import (
    DEFAULT_SOURCE_BASE_URL,
    HttpProductSourceGateway,
)

__all__ = ["DEFAULT_SOURCE_BASE_URL", "HttpProductSourceGateway"]
