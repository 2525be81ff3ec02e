"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.

Required fields of the mirror endpoints are Optional here and checked by the
routers, so a missing field is reported as a 400 with the field name rather
than a schema error.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# ============================================================================
# Common
# ============================================================================

class Popup(BaseModel):
    """Advisory UI hint carried by every response."""
    type: str  # "success", "warning" or "error"
    title: str
    message: str


class ApiResponse(BaseModel):
    """Envelope shared by all endpoints."""
    success: bool
    message: Optional[str] = None
    data: Any = None
    productId: Optional[int] = None
    count: Optional[int] = None
    warnings: Optional[List[Dict[str, Any]]] = None
    sources: Optional[Dict[str, bool]] = None
    popup: Optional[Popup] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Product stored successfully in database!",
                "data": {"id": 12, "blockchain_product_id": 3, "product_name": "Mango"},
                "productId": 3,
                "popup": {
                    "type": "success",
                    "title": "Product Stored",
                    "message": "Product information has been successfully saved in the database."
                }
            }
        }


# ============================================================================
# Mirror Models
# ============================================================================

class ProductCreate(BaseModel):
    """Product row to store in the mirror."""
    blockchain_product_id: Optional[int] = Field(
        None, description="Ledger id; the next free mirror id is used when omitted"
    )
    product_name: Optional[str] = None
    farmer_name: Optional[str] = None
    farm_location: Optional[str] = None
    harvest_date: Optional[int] = Field(None, description="Unix seconds")
    blockchain_owner_address: Optional[str] = None
    current_status: Optional[int] = 0
    price_wei: Optional[Union[int, str]] = 0
    is_for_sale: Optional[bool] = False

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "Alphonso Mango",
                "farmer_name": "R. Patil",
                "farm_location": "Ratnagiri",
                "harvest_date": 1717200000,
                "blockchain_owner_address": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
                "current_status": 0,
                "price_wei": "0",
                "is_for_sale": False
            }
        }


class ProductUpdate(BaseModel):
    """Mirrored fields to patch. Only fields present in the body are written."""
    product_name: Optional[str] = None
    farmer_name: Optional[str] = None
    farm_location: Optional[str] = None
    harvest_date: Optional[int] = None
    blockchain_owner_address: Optional[str] = None
    current_status: Optional[int] = None
    price_wei: Optional[Union[int, str]] = None
    is_for_sale: Optional[bool] = None


class SaleCreate(BaseModel):
    product_id: Optional[int] = None
    seller_address: Optional[str] = None
    buyer_address: Optional[str] = None
    sale_price_wei: Optional[Union[int, str]] = None
    sale_status: Optional[str] = None
    transaction_hash: Optional[str] = None


class StatusHistoryCreate(BaseModel):
    product_id: Optional[int] = None
    old_status: Optional[int] = None
    new_status: Optional[int] = None
    changed_by: Optional[str] = None
    transaction_hash: Optional[str] = None


class EventCreate(BaseModel):
    event_type: Optional[str] = None
    product_id: Optional[int] = None
    event_data: Optional[Dict[str, Any]] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None


# ============================================================================
# Ledger Intent Models
# ============================================================================

class HarvestRequest(BaseModel):
    """Register a harvested product on the ledger."""
    product_name: Optional[str] = None
    farmer_name: Optional[str] = None
    farm_location: Optional[str] = None
    harvest_date: Optional[int] = Field(None, description="Unix seconds")

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "Alphonso Mango",
                "farmer_name": "R. Patil",
                "farm_location": "Ratnagiri",
                "harvest_date": 1717200000
            }
        }


class StatusUpdateRequest(BaseModel):
    status: Optional[Union[int, str]] = Field(
        None, description="0-4 or a status name such as 'Processing'"
    )


class ListingRequest(BaseModel):
    price: Optional[int] = Field(None, description="Price in wei, > 0")


class PurchaseRequest(BaseModel):
    payment: Optional[int] = Field(
        None, description="Amount in wei to send; defaults to the listed price"
    )


class AuthorizationRequest(BaseModel):
    user: Optional[str] = Field(None, description="Account address to authorize")
