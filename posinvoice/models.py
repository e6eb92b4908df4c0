# posinvoice/models.py
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .time_utils import coerce_utc, utcnow

ProductType = Literal["unit", "weight"]
WeightUnit = Literal["kg", "g", "ltr", "ml"]
PriceType = Literal["fixed", "variable"]
PaymentMethod = Literal["cash", "card", "upi"]


class Product(BaseModel):
    id: str
    name: str
    category: str = "general"
    # per unit, or per kg/ltr for weight products
    price: float = Field(0.0, ge=0)
    type: ProductType = "unit"
    unit: Optional[WeightUnit] = None
    stock: float = Field(0.0, ge=0)
    gst_rate: float = Field(0.0, ge=0, le=100)
    barcode: Optional[str] = None
    price_type: PriceType = "fixed"
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def created_at_utc(cls, v):
        return coerce_utc(v)

    @model_validator(mode="after")
    def _unit_matches_type(self):
        if self.type == "weight" and self.unit is None:
            raise ValueError("weight products need a unit (kg, g, ltr or ml)")
        if self.type == "unit" and self.unit is not None:
            raise ValueError("unit products cannot carry a weight unit")
        return self


class _LineBase(BaseModel):
    line_id: str
    product_id: str
    name: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    gst_rate: float = Field(0.0, ge=0, le=100)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class UnitLine(_LineBase):
    kind: Literal["unit"] = "unit"


class WeightLine(_LineBase):
    kind: Literal["weight"] = "weight"
    weight: float = Field(gt=0)
    unit: WeightUnit


LineItem = Annotated[Union[UnitLine, WeightLine], Field(discriminator="kind")]


class SaleItem(BaseModel):
    product_id: str
    name: str
    kind: ProductType
    quantity: int
    unit_price: float
    line_total: float
    gst_rate: float = 0.0
    weight: Optional[float] = None
    unit: Optional[WeightUnit] = None


class Sale(BaseModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_mobile: Optional[str] = None
    items: List[SaleItem]
    subtotal: float
    discount_percent: float = 0.0
    discount_amount: float = 0.0
    tax_amount: float = 0.0
    total: float
    payment_method: PaymentMethod = "cash"
    gst_enabled: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def created_at_utc(cls, v):
        return coerce_utc(v)

    model_config = {"frozen": True}


class Customer(BaseModel):
    id: str
    name: str
    mobile: str
    email: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def created_at_utc(cls, v):
        return coerce_utc(v)


class ShopProfile(BaseModel):
    shop_name: str = "JR Invoice Maker"
    owner_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    # default GST rate for products created without one
    tax_rate: float = Field(5.0, ge=0, le=100)
