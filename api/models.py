"""
Request and response models for the HTTP API.
"""

from typing import List

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str


class User(BaseModel):
    id: str
    name: str
    email: str
    created_at: str


class CreateUserRequest(BaseModel):
    name: str
    email: str


class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(ge=0)
    price: float


class OrderRequest(BaseModel):
    user_id: str
    items: List[OrderItem]


class OrderResponse(BaseModel):
    order_id: str
    user_id: str
    total_amount: float
    status: str
    created_at: str
