"""
Setup script for IAM Baseline.
"""

from setuptools import find_packages, setup

with open("requirements.txt") as f:
    requirements = f.read().splitlines()

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="iam-baseline",
    version="1.0.0",
    author="IAM Baseline Team",
    author_email="team@example.com",
    description="Declarative IAM groups, users, policies and CloudTrail audit trail applied through Terraform",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/iam-baseline",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "iam_baseline": ["baseline/*.yaml", "baseline/policies/*.json"],
    },
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Information Technology",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
        "Topic :: Security",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-mock>=3.10.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "baselinectl=iam_baseline.cli.baselinectl:main",
        ],
    },
)
