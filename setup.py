"""Setup script for folio_agent package."""

from setuptools import setup, find_packages

setup(
    name="folio-agent",
    version="0.1.0",
    description="Tool-using LLM agent runtime for portfolio research, with pluggable providers",
    packages=find_packages(include=["folio_agent", "folio_agent.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.25.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "folio-agent=folio_agent.main:main",
        ],
    },
    package_data={
        "folio_agent": ["config/default_config.yaml"],
    },
)
