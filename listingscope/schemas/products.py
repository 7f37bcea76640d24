from pydantic import BaseModel, Field


class ProductRecord(BaseModel):
    """A single search-result listing."""

    model_config = {"populate_by_name": True}

    title: str
    price: str = Field(..., description="Displayed price string (e.g. '$29.99')")
    rating: str | None = Field(None, description="Raw rating label (e.g. '4.5 out of 5 stars')")
    image_url: str | None = Field(None, alias="imageUrl", description="Product image URL")
    link: str | None = Field(None, description="Canonical product page URL")


class ScrapeResponse(BaseModel):
    success: bool = True
    count: int = Field(..., description="Number of products returned")
    products: list[ProductRecord] = []


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
    solution: str | None = None
    example: str | None = None
