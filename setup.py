"""
Setup script for the Copydesk admin dashboard.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="copydesk",
    version="1.2.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"copydesk": ["templates/*.html", "templates/**/*.html"]},
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "flask>=3.0",
        "requests>=2.31",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-mock>=3.12",
        ],
    },
)
