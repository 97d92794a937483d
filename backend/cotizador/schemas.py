from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PHONE_PATTERN = re.compile(r"^[+]?[0-9\s\-()]{10,}$")


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not PHONE_PATTERN.match(value):
        raise ValueError("Formato de telefono no valido")
    return value


class ClientCreatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    nombre: str = Field(min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    telefono: Optional[str] = Field(default=None, max_length=40)
    direccion: Optional[str] = Field(default=None, max_length=300)

    @field_validator("telefono")
    @classmethod
    def check_telefono(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone(value)


class ClientUpdatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    nombre: Optional[str] = Field(default=None, min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    telefono: Optional[str] = Field(default=None, max_length=40)
    direccion: Optional[str] = Field(default=None, max_length=300)

    @field_validator("telefono")
    @classmethod
    def check_telefono(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone(value)


class ClientOut(BaseModel):
    id: int
    nombre: str
    email: Optional[str] = None
    telefono: Optional[str] = None
    direccion: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientDetail(ClientOut):
    total_cotizaciones: int = 0
    monto_total: Decimal = Decimal("0")
    primera_cotizacion: Optional[date] = None
    ultima_cotizacion: Optional[date] = None


class ClientTopOut(BaseModel):
    id: int
    nombre: str
    total_cotizaciones: int
    monto_total: Decimal
    ultima_cotizacion: Optional[date] = None


class ClientLookup(BaseModel):
    id: int
    nombre: str
    email: Optional[str] = None
    telefono: Optional[str] = None


class ItemTypeOut(BaseModel):
    id: int
    name: str


class ItemCreatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    type_id: int = Field(ge=1)
    description: Optional[str] = Field(default=None, max_length=1000)


class ItemUpdatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    type_id: Optional[int] = Field(default=None, ge=1)
    description: Optional[str] = Field(default=None, max_length=1000)


class ItemOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    price_formatted: Optional[str] = None
    type_id: int
    type_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuotationLineInput(BaseModel):
    id: int = Field(ge=1)
    quantity: int = Field(ge=1, le=1_000_000)


class QuotationCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cliente_id: int = Field(alias="clienteId", ge=1)
    items: List[QuotationLineInput] = Field(min_length=1)


class QuotationLineOut(BaseModel):
    id: int
    name: str
    type_name: Optional[str] = None
    price: Decimal
    quantity: int
    total: Decimal


class QuotationSummary(BaseModel):
    id: str
    cliente_id: int
    cliente_nombre: str
    fecha: date
    total: Decimal


class QuotationDetail(QuotationSummary):
    total_formateado: Optional[str] = None
    items: List[QuotationLineOut]


class QuotationListFilters(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    search: Optional[str] = Field(default=None, max_length=120)
    cliente_id: Optional[int] = None


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class QuotationListResponse(BaseModel):
    items: List[QuotationSummary]
    pagination: PaginationInfo


class ClientQuotationSummary(BaseModel):
    cotizacion_id: str
    fecha: date
    total: Decimal
    items_count: int


class ClientQuotationListResponse(BaseModel):
    items: List[ClientQuotationSummary]
    pagination: PaginationInfo


class MessageResponse(BaseModel):
    message: str
