from datetime import datetime
from typing import Literal, Optional
from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError

CATEGORIES = (
    "Electronics",
    "Textbooks",
    "Stationery",
    "Clothing",
    "Accessories",
    "ID Cards",
    "Keys",
    "Bags",
    "Sports Equipment",
    "Other",
)

Category = Literal[
    "Electronics",
    "Textbooks",
    "Stationery",
    "Clothing",
    "Accessories",
    "ID Cards",
    "Keys",
    "Bags",
    "Sports Equipment",
    "Other",
]


class ValidatedReport(BaseModel):
    report_type: Literal["lost", "found"]
    item_name: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=5, max_length=1000)
    category: Category
    location: str = Field(min_length=2, max_length=100)
    date: datetime


class ValidatedReportUpdate(BaseModel):
    item_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, min_length=5, max_length=1000)
    category: Optional[Category] = None
    location: Optional[str] = Field(default=None, min_length=2, max_length=100)
    date: Optional[datetime] = None


def parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise HTTPException(status_code=400, detail="Date not parseable")


def validate_report_form(
    report_type: str,
    item_name: str,
    description: str,
    category: str,
    location: str,
    date: str,
) -> ValidatedReport:
    parsed_date = parse_date(date)

    try:
        return ValidatedReport(
            report_type=report_type,
            item_name=item_name.strip(),
            description=description.strip(),
            category=category,
            location=location.strip(),
            date=parsed_date,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False),
        )


def validate_report_update(updates: dict) -> ValidatedReportUpdate:
    allowed = set(ValidatedReportUpdate.model_fields)

    for field in updates:
        if field not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Field '{field}' cannot be updated",
            )

    cleaned = {}
    for field, value in updates.items():
        if field == "date":
            value = parse_date(value)
        elif isinstance(value, str):
            value = value.strip()
        cleaned[field] = value

    try:
        return ValidatedReportUpdate(**cleaned)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False),
        )
