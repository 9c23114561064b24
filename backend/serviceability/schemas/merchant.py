from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field


class ContactInformation(BaseModel):
    phone_number: str = ""
    email: str = ""


class MerchantData(BaseModel):
    """Inbound merchant record; ``id`` is ignored on create."""

    id: int = 0
    name: str = Field(min_length=1)
    business_category: str = ""
    contact: ContactInformation = Field(default_factory=ContactInformation)
    pincodes_serviced: List[str] = Field(default_factory=list)


class MerchantUpdate(BaseModel):
    name: str = Field(min_length=1)
    business_category: str = ""
    phone_number: str = ""
    email: str = ""


class Pincodes(BaseModel):
    pincodes: List[str] = Field(min_length=1)


class MerchantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    business_category: str
    phone_number: str
    email: str
    pincodes_serviced: str


class MerchantSummary(BaseModel):
    id: int
    name: str


class MerchantServiceability(BaseModel):
    merchant_ids: List[int]


class ApiResponse(BaseModel):
    status: Literal["success", "error"]
    data: dict[str, Any]
