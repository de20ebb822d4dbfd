from setuptools import setup, find_packages

setup(
    name="evince",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "redis",
        "requests",
        "prometheus_client",
        "protobuf>=5.26,<7"
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx"
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "evince=evince.__main__:main",
        ],
    }
)
