from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.exceptions import NotFoundError, ValidationError
from todox.models.category import Category
from todox.models.task import Task


async def list_categories(db: AsyncSession, user_id: int) -> List[Category]:
    result = await db.execute(select(Category).where(Category.user_id == user_id).order_by(Category.name))
    return list(result.scalars().all())


async def find_owned(db: AsyncSession, user_id: int, category_id: int) -> Optional[Category]:
    result = await db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def find_by_name(db: AsyncSession, user_id: int, name: str) -> Optional[Category]:
    result = await db.execute(select(Category).where(Category.user_id == user_id, Category.name == name))
    return result.scalar_one_or_none()


async def get_or_create(db: AsyncSession, user_id: int, name: str) -> Category:
    """Return the owner's category with this exact name, creating it if needed.

    The (user_id, name) unique constraint settles races between concurrent
    imports: the loser rolls back and reads the winner's row.
    """
    category = await find_by_name(db, user_id, name)
    if category:
        return category

    category = Category(name=name, user_id=user_id)
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        category = await find_by_name(db, user_id, name)
        if category is None:
            raise
    return category


async def create(db: AsyncSession, user_id: int, name: str) -> Category:
    if await find_by_name(db, user_id, name):
        raise ValidationError("Category already exists")
    category = Category(name=name, user_id=user_id)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


async def rename(db: AsyncSession, user_id: int, category_id: int, name: str) -> Category:
    category = await find_owned(db, user_id, category_id)
    if not category:
        raise NotFoundError("Category not found")
    existing = await find_by_name(db, user_id, name)
    if existing and existing.id != category.id:
        raise ValidationError("Category already exists")
    category.name = name
    await db.commit()
    await db.refresh(category)
    return category


async def delete(db: AsyncSession, user_id: int, category_id: int) -> Category:
    category = await find_owned(db, user_id, category_id)
    if not category:
        raise NotFoundError("Category not found")
    # Tasks are kept; they just lose the reference
    await db.execute(
        update(Task)
        .where(Task.user_id == user_id, Task.category_id == category_id)
        .values(category_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(category)
    await db.commit()
    return category
