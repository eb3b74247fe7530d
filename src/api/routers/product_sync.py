import logging
from typing import Annotated, List, Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, status

from src.api.observability import correlation_id_var
from src.api.routers.product_sync_config import (
    allowed_product_types,
    build_gateway,
    build_repository,
)
from src.api.routers.runtime_utils import assert_feature_enabled, normalize_backend_init_error
from src.core.product_sync import (
    ProductSyncNoDataError,
    ProductSyncPersistenceError,
    ProductSyncPersister,
    ProductSyncService,
    ReconciledProduct,
    SourceResponseShapeError,
    SyncResult,
)

router = APIRouter(tags=["Product Sync"])
logger = logging.getLogger(__name__)

_SERVICE: Optional[ProductSyncService] = None

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def get_product_sync_service() -> ProductSyncService:
    global _SERVICE
    if _SERVICE is None:
        try:
            repository = build_repository()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=normalize_backend_init_error(
                    detail=str(exc),
                    required_detail="PRODUCT_SYNC_POSTGRES_DSN_REQUIRED",
                    fallback_detail="PRODUCT_SYNC_POSTGRES_CONNECTION_FAILED",
                ),
            ) from exc
        _SERVICE = ProductSyncService(
            gateway=build_gateway(),
            persister=ProductSyncPersister(repository=repository),
            allowed_product_types=allowed_product_types(),
        )
    return _SERVICE


def reset_product_sync_service_for_tests() -> None:
    global _SERVICE
    _SERVICE = None


def _assert_sync_apis_enabled() -> None:
    assert_feature_enabled(
        name="PRODUCT_SYNC_APIS_ENABLED",
        default=True,
        detail="PRODUCT_SYNC_APIS_DISABLED",
    )


@router.post(
    "/sync",
    response_model=SyncResult,
    status_code=status.HTTP_200_OK,
    summary="Sync Products From Source",
    description=(
        "Fetches products and allocations from the upstream source, reconciles them and "
        "replaces the stored snapshot in one transaction."
    ),
    responses={
        422: {"description": "No product survived pairing and validation."},
        502: {"description": "Upstream source unavailable or returned an invalid payload."},
        500: {"description": "Persistence failed; the previous snapshot was kept."},
    },
)
async def sync_products(
    correlation_id: Annotated[
        Optional[str],
        Header(
            alias="X-Correlation-Id",
            description="Optional correlation id propagated to sync logs.",
            examples=["corr-sync-001"],
        ),
    ] = None,
    service: Annotated[ProductSyncService, Depends(get_product_sync_service)] = None,
) -> SyncResult:
    _assert_sync_apis_enabled()
    logger.info("Syncing data from the source to the database")
    try:
        return await service.run_sync(
            correlation_id=correlation_id or correlation_id_var.get() or None
        )
    except ProductSyncNoDataError as exc:
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    except SourceResponseShapeError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="PRODUCT_SOURCE_RESPONSE_INVALID",
        ) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="PRODUCT_SOURCE_UNAVAILABLE",
        ) from exc
    except ProductSyncPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


@router.get(
    "/products",
    response_model=List[ReconciledProduct],
    status_code=status.HTTP_200_OK,
    summary="List Synced Products",
    description="Returns every stored product with its allocation rows, ordered by product id.",
)
def list_products(
    service: Annotated[ProductSyncService, Depends(get_product_sync_service)] = None,
) -> List[ReconciledProduct]:
    _assert_sync_apis_enabled()
    logger.info("Getting all products from the database")
    return service.list_products()
