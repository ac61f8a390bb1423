"""Setup script for FileVault."""
from setuptools import setup, find_packages

setup(
    name="filevault",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["cli"],
    install_requires=[
        "flask",
        "sqlalchemy",
        "pydantic",
        "boto3",
        "botocore",
        "python-dotenv",
        "tenacity",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "filevault=cli:main",
        ],
    },
    python_requires=">=3.10",
)
