"""
Dataroom Tree Indexer setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="dataroom-indexer",
    version="1.0.0",
    description="Dataroom Tree Indexer — hierarchical indexes, subtree moves and tree materialization",
    packages=find_packages(include=["dataroom", "dataroom.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "dataroom=dataroom.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "redis>=5.0",
        "celery[redis]>=5.3",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)
