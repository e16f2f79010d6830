from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel, Relationship

from .config import MAX_FAMILY_MEMBERS


class UserRole(str, Enum):
    parent = "PARENT"
    cook = "COOK"
    driver = "DRIVER"
    child = "CHILD"


class FamilyRole(str, Enum):
    owner = "OWNER"
    admin = "ADMIN"
    member = "MEMBER"


class JoinRequestStatus(str, Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class MealType(str, Enum):
    breakfast = "BREAKFAST"
    lunch = "LUNCH"
    dinner = "DINNER"
    snack = "SNACK"  # single-meal creation only, never part of the weekly grid


class ActivityStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


class Family(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    # legacy families may have no owner recorded
    owner_id: Optional[int] = Field(default=None, index=True)
    invite_code: Optional[str] = Field(default=None, index=True)
    invite_expiry: Optional[datetime] = None
    max_members: int = Field(default=MAX_FAMILY_MEMBERS)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    auth_id: str = Field(index=True, unique=True)
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: UserRole = Field(default=UserRole.parent)
    family_role: Optional[FamilyRole] = None
    family_id: Optional[int] = Field(default=None, foreign_key="family.id", index=True)
    joined_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class JoinRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    user_id: int = Field(foreign_key="user.id")
    status: JoinRequestStatus = Field(default=JoinRequestStatus.pending)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    responded_at: Optional[datetime] = None


class MealRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    created_by_id: Optional[int] = Field(default=None, foreign_key="user.id")
    title: str
    description: str = ""
    meal_type: MealType
    date: datetime = Field(index=True)
    ingredients: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    instructions: str = ""
    calories: Optional[int] = None
    cuisine: str = ""
    is_ai_generated: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ShoppingList(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    title: str
    week_start: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    items: list["ShoppingItem"] = Relationship(
        back_populates="shopping_list",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "ShoppingItem.id"},
    )


class ShoppingItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    shopping_list_id: Optional[int] = Field(default=None, foreign_key="shoppinglist.id", index=True)
    name: str
    quantity: str = "1"
    category: str = "Other"
    is_purchased: bool = False
    is_manual: bool = False

    shopping_list: Optional[ShoppingList] = Relationship(back_populates="items")


class Activity(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    created_by_id: Optional[int] = Field(default=None, foreign_key="user.id")
    title: str
    description: str = ""
    date: datetime
    location: str = ""
    status: ActivityStatus = Field(default=ActivityStatus.pending)
    created_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "Activity",
    "ActivityStatus",
    "Family",
    "FamilyRole",
    "JoinRequest",
    "JoinRequestStatus",
    "MealRecord",
    "MealType",
    "ShoppingItem",
    "ShoppingList",
    "User",
    "UserRole",
]
