from sqlalchemy import BigInteger, Boolean, Column, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Bike(Base):
    __tablename__ = "bikes"

    id = Column(Integer, primary_key=True, index=True)
    manufacturer = Column(String, nullable=False)
    model = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    hourly_cost = Column("hourlyCost", Float, nullable=False, index=True)
    owner_user_id = Column("ownerUserId", BigInteger, nullable=False, index=True)
    suitable_height_in_meters = Column("suitableHeightInMeters", Float, nullable=False)
    maximum_weight_in_kg = Column("maximumWeightInKg", Float, nullable=False)
    available = Column(Boolean, nullable=False, default=True, index=True)


# имя поля записи -> атрибут модели
FIELD_COLUMNS = {
    "id": Bike.id,
    "manufacturer": Bike.manufacturer,
    "model": Bike.model,
    "type": Bike.type,
    "hourlyCost": Bike.hourly_cost,
    "ownerUserId": Bike.owner_user_id,
    "suitableHeightInMeters": Bike.suitable_height_in_meters,
    "maximumWeightInKg": Bike.maximum_weight_in_kg,
    "available": Bike.available,
}


def to_record(bike: Bike) -> dict:
    return {field: getattr(bike, column.key) for field, column in FIELD_COLUMNS.items()}
