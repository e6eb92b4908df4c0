# posinvoice/core.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import PaymentMethod, PriceType, ProductType, WeightUnit

# Request payloads accepted by the API.


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = "general"
    price: float = Field(0.0, ge=0)
    type: ProductType = "unit"
    unit: Optional[WeightUnit] = None
    stock: float = Field(0.0, ge=0)
    gst_rate: Optional[float] = Field(None, ge=0, le=100)
    barcode: Optional[str] = None
    price_type: PriceType = "fixed"


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    type: Optional[ProductType] = None
    unit: Optional[WeightUnit] = None
    stock: Optional[float] = Field(None, ge=0)
    gst_rate: Optional[float] = Field(None, ge=0, le=100)
    barcode: Optional[str] = None
    price_type: Optional[PriceType] = None


class CustomerIn(BaseModel):
    name: str = Field(..., min_length=1)
    mobile: str = Field(..., min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    mobile: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


class ProfileUpdate(BaseModel):
    shop_name: Optional[str] = Field(None, min_length=1)
    owner_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    tax_rate: Optional[float] = Field(None, ge=0, le=100)


class AddToCartIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    product_id: str
    quantity: int = 1
    weight: Optional[float] = None
    unit: Optional[WeightUnit] = None
    # only for variable-price products, per unit or per kg/ltr
    price: Optional[float] = None


class UpdateCartLineIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    line_id: str
    quantity: int


class RemoveFromCartIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    line_id: str


class ClearCartIn(BaseModel):
    session_id: str = Field(..., min_length=1)


class CheckoutIn(BaseModel):
    discount_percent: float = 0.0
    gst_enabled: bool = True
    payment_method: PaymentMethod = "cash"
    customer_name: Optional[str] = None
    customer_mobile: Optional[str] = None


class BackupIn(BaseModel):
    products: List[Dict[str, Any]] = []
    sales: List[Dict[str, Any]] = []
    customers: List[Dict[str, Any]] = []
    exportDate: Optional[str] = None


def _make_product_dict(product_id: str, p: ProductIn, default_gst_rate: float) -> Dict[str, Any]:
    return {
        "id": product_id,
        "name": p.name,
        "category": p.category,
        "price": p.price,
        "type": p.type,
        "unit": p.unit if p.type == "weight" else None,
        "stock": p.stock,
        "gst_rate": p.gst_rate if p.gst_rate is not None else default_gst_rate,
        "barcode": p.barcode,
        "price_type": p.price_type,
    }
