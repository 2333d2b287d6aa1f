from pydantic import Field

from core.models.base import CamelModel


class MealItem(CamelModel):
    name: str = ""
    description: str | None = None
    image: str | None = None
    nutrition: dict = Field(default_factory=dict)   # kcal / protein_g / ...
