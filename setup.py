# setup.py
"""Setup script for the Quota Pool Engine."""

from setuptools import setup, find_packages

setup(
    name="quota-pool-engine",
    version="1.0.0",
    packages=find_packages(include=["quotapool", "quotapool.*", "cli", "cli.*", "worker", "worker.*"]),
    include_package_data=True,
    install_requires=[
        "click>=8.0",
        "pyyaml>=6.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "structlog>=23.1",
        "prometheus-client>=0.17",
        "aiosqlite>=0.19",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "black>=23.0",
            "flake8>=6.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "quotapool=cli.main:cli",
            "qp=cli.main:cli",  # Short alias
            "quotapool-worker=worker.cli:main",
        ],
    },
    python_requires=">=3.8",
)
