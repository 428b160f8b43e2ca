from __future__ import annotations

from sqlalchemy.orm import Session

from .core.database import SessionLocal
from .models import AssetCategory, User


# (name, description, color, is_liability)
DEFAULT_ASSET_CATEGORIES = (
    ("Checking", "Checking accounts", "#4ECDC4", False),
    ("Savings", "Savings accounts", "#45B7D1", False),
    ("401k", "401k retirement accounts", "#F7DC6F", False),
    ("Roth IRA", "Roth IRA retirement accounts", "#98D8C8", False),
    ("Brokerage", "Brokerage investment accounts", "#FFA07A", False),
    ("Other Assets", "Other assets like property, vehicles", "#B19CD9", False),
    ("Credit Cards", "Credit card debt", "#FF6B6B", True),
    ("Loans", "Personal loans, auto loans", "#E74C3C", True),
    ("Mortgage", "Home mortgage", "#C0392B", True),
    ("Student Loans", "Student loan debt", "#D35400", True),
)


def seed_defaults(db: Session) -> None:
    """Demo 사용자와 기본 자산 카테고리를 준비 (여러 번 실행해도 안전)."""
    user = db.query(User).filter_by(email="demo@example.com").first()
    if not user:
        db.add(User(email="demo@example.com", is_active=True))
        db.flush()

    for order, (name, description, color, is_liability) in enumerate(DEFAULT_ASSET_CATEGORIES, start=1):
        category = db.query(AssetCategory).filter_by(name=name).first()
        if not category:
            db.add(
                AssetCategory(
                    name=name,
                    description=description,
                    color=color,
                    is_liability=is_liability,
                    sort_order=order,
                )
            )
    db.commit()


def seed() -> None:
    db: Session = SessionLocal()
    try:
        seed_defaults(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
