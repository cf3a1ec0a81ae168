"""
Setup script for the leadtemplates package.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read requirements.txt
requirements_path = Path(__file__).parent / "requirements" / "requirements.txt"
with open(requirements_path, "r") as f:
    # Filter out comments and empty lines
    install_requires = []
    for line in f:
        line = line.strip()
        if line and not line.startswith("#"):
            install_requires.append(line)

# Read long description from README.md if it exists
long_description = ""
readme_path = Path(__file__).parent / "README.md"
if readme_path.exists():
    with open(readme_path, "r") as f:
        long_description = f.read()

setup(
    name="leadtemplates",
    version="1.0.0",
    description="Template selection and A/B experimentation for lead communications",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Anthrasite",
    author_email="info@anthrasite.io",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"leadtemplates.matching": ["*.yml"]},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-mock>=3.11.1",
        ],
        "dev": [
            "ruff>=0.1.3",
            "black>=24.0.0",
            "mypy>=1.5.1",
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "leadtemplates=leadtemplates.cli.main:cli",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Topic :: Software Development :: Libraries",
    ],
)
