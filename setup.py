"""
Setup script for the Carbon Claims Ledger
"""

from setuptools import find_namespace_packages, setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="carbon-claims-ledger",
    version="1.0.0",
    description="A ledger for claiming and transferring emission reduction certificates along a supply chain",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["carbon_ledger*"], exclude=["carbon_ledger.tests*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "httpx>=0.27.0",
            "testcontainers[postgres]>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ledger-expire-claims=carbon_ledger.claim.expiry_task:main",
        ],
    },
)
