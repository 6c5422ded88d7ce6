"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="career-chat",
    version="0.1.0",
    description="Chat sessions with an AI career counselor",
    packages=find_namespace_packages(where="src", include=["career_chat*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "pydantic>=2.0",
        "pydantic-settings>=2.1",
        "structlog>=23.1",
        "google-generativeai>=0.5",
        "google-api-core>=2.11",
        "sqlalchemy>=2.0",
        "prometheus-client>=0.17",
        "opentelemetry-instrumentation-fastapi>=0.41b0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": ["career-chat=career_chat.__main__:main"],
    },
)
