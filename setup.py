from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent


def read_version() -> str:
    for line in (ROOT / "openbook_cranker" / "__init__.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("version not found")


setup(
    name="openbook-cranker",
    version=read_version(),
    description="Event heap cranker for OpenBook v2 markets on Solana",
    python_requires=">=3.11",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "aiohttp>=3.9",
        "base58>=2.1",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "solana>=0.34,<0.40",
        "solders>=0.21",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "openbook-cranker=openbook_cranker.main:main",
        ],
    },
)
