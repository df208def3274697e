from enum import Enum
from typing import List

from pydantic import BaseModel


class BikeType(str, Enum):
    mountain = "mountain"
    road = "road"
    tandem = "tandem"


class BikeBase(BaseModel):
    manufacturer: str
    model: str
    type: BikeType
    hourlyCost: float
    ownerUserId: int
    suitableHeightInMeters: float
    maximumWeightInKg: float


class Bike(BikeBase):
    id: int
    available: bool

    class Config:
        from_attributes = True


class FieldError(BaseModel):
    field: str
    reason: str


class ValidationFailure(BaseModel):
    detail: str
    errors: List[FieldError]


class Message(BaseModel):
    message: str
    bike_id: int
