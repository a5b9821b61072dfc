# routes_categories.py

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from schemas import CategoryOut
from budgetly.deps import get_db
from budgetly.services.categories import list_categories

router = APIRouter(tags=["categories"])


@router.get("/categories", response_model=List[CategoryOut])
def categories_list(db: Session = Depends(get_db)):
    return [CategoryOut.model_validate(category) for category in list_categories(db)]
