import logging
from typing import Any, Dict, List, Optional
from schema import Course, WishlistEntry
from utils import new_id, utcnow
from services.catalog import CatalogService
from services.errors import NotFoundError, ValidationFailure

logger = logging.getLogger(__name__)


class WishlistService:
    """
    Per-user list of saved courses.
    """
    def __init__(self, db, catalog: Optional[CatalogService] = None):
        self.db = db
        self.catalog = catalog or CatalogService(db)

    def _entry(self, user_id: str, course_id: str) -> Optional[WishlistEntry]:
        return self.db.query(WishlistEntry).filter_by(user_id=user_id, course_id=course_id).first()

    def add(self, user_id: str, course_id: str) -> List[Dict[str, Any]]:
        self.catalog.get_course(course_id)
        if self._entry(user_id, course_id) is None:
            self.db.add(WishlistEntry(
                entry_id=new_id(),
                user_id=user_id,
                course_id=course_id,
                added_at=utcnow(),
            ))
            self.db.commit()
        return self.list_courses(user_id)

    def remove(self, user_id: str, course_id: str) -> List[Dict[str, Any]]:
        entry = self._entry(user_id, course_id)
        if entry is None:
            raise NotFoundError("Course not found in wishlist")
        self.db.delete(entry)
        self.db.commit()
        return self.list_courses(user_id)

    def bulk_remove(self, user_id: str, course_ids: List[str]) -> Dict[str, Any]:
        if not isinstance(course_ids, list) or not all(isinstance(c, str) for c in course_ids):
            raise ValidationFailure("course_ids must be an array")
        removed = 0
        if course_ids:
            removed = (
                self.db.query(WishlistEntry)
                .filter(WishlistEntry.user_id == user_id, WishlistEntry.course_id.in_(course_ids))
                .delete(synchronize_session=False)
            )
            self.db.commit()
        logger.info(f"Removed {removed} course(s) from wishlist of {user_id}")
        return {"removed_count": removed, "courses": self.list_courses(user_id)}

    def check(self, user_id: str, course_id: str) -> bool:
        return self._entry(user_id, course_id) is not None

    def list_courses(self, user_id: str) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(WishlistEntry, Course)
            .join(Course, Course.course_id == WishlistEntry.course_id)
            .filter(WishlistEntry.user_id == user_id)
            .order_by(WishlistEntry.added_at.asc())
            .all()
        )
        return [
            {
                "course_id": course.course_id,
                "title": course.title,
                "price": course.price,
                "added_at": entry.added_at.isoformat() if entry.added_at else None,
            }
            for entry, course in rows
        ]
