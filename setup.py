"""
Setup script for the Creator Subscriptions package
"""
from setuptools import setup, find_packages

setup(
    name="creator_subscriptions",
    version="0.1.0",
    description="Subscription, quota, credit and usage-session accounting for the Creator content platform",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"creator_subscriptions": ["data/*.yaml"]},
    include_package_data=True,
    py_modules=[],
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "sqlalchemy>=2.0",
        "alembic>=1.13",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "python-dotenv>=1.0",
        "python-jose[cryptography]>=3.3",
        "pyyaml>=6.0",
        "redis>=5.0",
        "httpx>=0.27",
        "apscheduler>=3.10,<4",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
