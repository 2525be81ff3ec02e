"""
Ledger API Endpoints.

Lifecycle intents against the ledger (harvest, status, listing, purchase,
authorization) and the reconciled product view. Every confirmed intent is
mirrored automatically; a mirror write that did not land is reported in
`warnings` while the response stays successful.

Domain errors propagate to the application's exception handler, which maps
them to 400/403/404/502/503.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_reader, get_service
from api.models import (
    ApiResponse,
    AuthorizationRequest,
    HarvestRequest,
    ListingRequest,
    PurchaseRequest,
    StatusUpdateRequest,
)
from api.responses import ok
from services.lifecycle_service import LifecycleResult, SupplyChainService
from services.product_reader import ProductReader

router = APIRouter()


def _result_data(result: LifecycleResult) -> dict:
    data = {
        "operation": result.operation,
        "product_id": result.product_id,
        "transaction_hash": result.tx_hash,
        "block_number": result.block_number,
    }
    if result.event is not None:
        data["event"] = {"type": result.event.event_type.value, **result.event.payload()}
    return data


@router.get(
    "/products",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="List Products",
    description="Ledger products merged with mirror-only products."
)
def list_products(reader: ProductReader = Depends(get_reader)):
    """
    Reconciled product list.

    Ledger entries come first in id order, followed by products only the
    mirror knows about. If one source is down the other is listed alone;
    `sources` tells which ones answered.
    """
    listing = reader.read()
    return ok(
        data=[p.to_dict() for p in listing.products],
        count=len(listing.products),
        sources={"ledger": listing.ledger_available, "mirror": listing.mirror_available},
    )


@router.get(
    "/products/{product_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get Product",
)
def get_product(product_id: int, reader: ProductReader = Depends(get_reader)):
    return ok(data=reader.get_product(product_id).to_dict())


@router.post(
    "/products",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Harvest Product",
)
def harvest_product(request: HarvestRequest, service: SupplyChainService = Depends(get_service)):
    result = service.harvest(
        request.product_name,
        request.farmer_name,
        request.farm_location,
        request.harvest_date,
    )
    return ok(
        "Product harvested and recorded on the blockchain!",
        _result_data(result),
        productId=result.product_id,
        warnings=result.warnings,
        title="Product Harvested",
    )


@router.post(
    "/products/{product_id}/status",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Update Product Status",
)
def update_status(
    product_id: int,
    request: StatusUpdateRequest,
    service: SupplyChainService = Depends(get_service),
):
    result = service.update_status(product_id, request.status)
    return ok(
        "Product status updated on the blockchain!",
        _result_data(result),
        productId=result.product_id,
        warnings=result.warnings,
        title="Status Updated",
    )


@router.post(
    "/products/{product_id}/sale",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Put Product For Sale",
)
def put_for_sale(
    product_id: int,
    request: ListingRequest,
    service: SupplyChainService = Depends(get_service),
):
    result = service.put_for_sale(product_id, request.price)
    return ok(
        "Product listed for sale on the blockchain!",
        _result_data(result),
        productId=result.product_id,
        warnings=result.warnings,
        title="Listed For Sale",
    )


@router.post(
    "/products/{product_id}/purchase",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Purchase Product",
)
def purchase_product(
    product_id: int,
    request: PurchaseRequest,
    service: SupplyChainService = Depends(get_service),
):
    result = service.purchase(product_id, request.payment)
    return ok(
        "Product purchased on the blockchain!",
        _result_data(result),
        productId=result.product_id,
        warnings=result.warnings,
        title="Purchase Complete",
    )


@router.post(
    "/authorizations",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Authorize User",
    description="Allow an account to harvest products and update status. Contract owner only."
)
def authorize_user(request: AuthorizationRequest, service: SupplyChainService = Depends(get_service)):
    result = service.authorize_user(request.user)
    return ok(
        "User authorized on the blockchain!",
        _result_data(result),
        title="User Authorized",
    )
