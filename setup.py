"""
Setup script for Floraa - AI chat back end with multi-agent and voice-to-code services
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read requirements
requirements = []
with open(this_directory / "requirements.txt", "r") as f:
    for line in f:
        line = line.strip()
        if line and not line.startswith("#"):
            requirements.append(line)

DEV_TOOLS = ["pytest", "black", "mypy", "ruff"]

# Core dependencies (without development tools)
core_requirements = [
    req for req in requirements
    if not any(dev in req for dev in DEV_TOOLS)
]

# Development dependencies
dev_requirements = [
    req for req in requirements
    if any(dev in req for dev in DEV_TOOLS)
]

setup(
    name="floraa",
    version="1.0.0",
    author="Floraa Team",
    author_email="",
    description="AI chat back end with project memory, multi-agent collaboration and voice-to-code",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=core_requirements,
    extras_require={
        "dev": dev_requirements,
    },
    entry_points={
        "console_scripts": [
            "floraa=floraa.cli.main:main",
        ],
    },
    include_package_data=True,
    package_data={
        "": ["*.yaml", "*.yml", "*.json"],
    },
    zip_safe=False,
)
