from typing import Any, Dict, Optional
from schema import Course, Product
from services.errors import NotFoundError, ValidationFailure

COURSE = "Course"
PRODUCT = "Product"
ITEM_TYPES = {"course": COURSE, "product": PRODUCT}


def normalize_item_type(item_type) -> str:
    """
    Accepts 'course'/'Course'/'product'/'Product' and returns the canonical form.
    """
    if not isinstance(item_type, str) or item_type.lower() not in ITEM_TYPES:
        raise ValidationFailure("item_type must be 'Course' or 'Product'")
    return ITEM_TYPES[item_type.lower()]


class CatalogService:
    """
    Read-only view over the course and product catalog.
    """
    def __init__(self, db):
        self.db = db

    def _lookup(self, item_id: str, item_type: str):
        if item_type == COURSE:
            return self.db.query(Course).filter_by(course_id=item_id).first()
        return self.db.query(Product).filter_by(product_id=item_id).first()

    def get_price(self, item_id: str, item_type: str) -> float:
        """
        Args:
            item_id: Catalog identifier.
            item_type: Canonical item type ('Course' or 'Product').

        Returns:
            The current list price.

        Raises:
            NotFoundError: No such item in the catalog.
        """
        item = self._lookup(item_id, item_type)
        if item is None:
            raise NotFoundError(f"{item_type} with ID {item_id} not found")
        return item.price

    def describe(self, item_id: str, item_type: str) -> Optional[Dict[str, Any]]:
        item = self._lookup(item_id, item_type)
        if item is None:
            return None
        return {"title": item.title, "price": item.price}

    def get_course(self, course_id: str) -> Course:
        course = self.db.query(Course).filter_by(course_id=course_id).first()
        if course is None:
            raise NotFoundError(f"Course with ID {course_id} not found")
        return course
