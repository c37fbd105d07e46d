"""Seed a demo designer account and a household energy survey template."""
import asyncio

from sqlalchemy import select

from carbonsurvey.database import async_session_factory
from carbonsurvey.models import SurveyTemplate, User
from carbonsurvey.services.code_service import TemplateCodeService
from carbonsurvey.utils.security import hash_password


DEMO_USER = {
    "username": "demo@carbonsurvey.local",
    "email": "demo@carbonsurvey.local",
    "name": "Demo Designer",
    "password": "demo-password",
}

HOUSEHOLD_TEMPLATE = {
    "name": "Household Energy & Travel",
    "description": "Monthly household energy use and commuting.",
    "questions": [
        {"id": "electricity", "text": "Electricity used last month", "unit": "kWh", "coefficient": 0.45},
        {"id": "natural_gas", "text": "Natural gas used last month", "unit": "m³", "coefficient": 2.03},
        {"id": "lpg", "text": "LPG cylinders used last month", "unit": "kg", "coefficient": 2.98},
        {"id": "car_petrol", "text": "Petrol bought for household cars", "unit": "L", "coefficient": 2.31},
        {"id": "car_diesel", "text": "Diesel bought for household cars", "unit": "L", "coefficient": 2.68},
        {"id": "bus_km", "text": "Distance travelled by bus", "unit": "km", "coefficient": 0.105},
        {"id": "flights_short", "text": "Short-haul flights taken", "unit": "flights", "coefficient": 255.0},
        {"id": "waste", "text": "General waste bags thrown away", "unit": "bags", "coefficient": 1.2},
    ],
}


async def seed():
    async with async_session_factory() as session:
        user = (await session.execute(
            select(User).where(User.username == DEMO_USER["username"])
        )).scalar_one_or_none()
        if user is None:
            user = User(
                username=DEMO_USER["username"],
                email=DEMO_USER["email"],
                name=DEMO_USER["name"],
                password=hash_password(DEMO_USER["password"]),
            )
            session.add(user)
            await session.flush()
            print(f"  Seeded user {user.username}")
        else:
            print(f"  User {user.username} already exists, skipping.")

        existing = (await session.execute(
            select(SurveyTemplate).where(
                SurveyTemplate.name == HOUSEHOLD_TEMPLATE["name"],
                SurveyTemplate.created_by == user.id,
            )
        )).scalar_one_or_none()
        if existing is None:
            user_id = user.id
            template = await TemplateCodeService().insert_with_unique_code(
                session,
                lambda code: SurveyTemplate(code=code, created_by=user_id, **HOUSEHOLD_TEMPLATE),
            )
            print(f"  Seeded template {template.name!r} with code {template.code}")
        else:
            print(f"  Template {existing.name!r} already exists ({existing.code}), skipping.")
        await session.commit()
    print("Done seeding.")


if __name__ == "__main__":
    asyncio.run(seed())
