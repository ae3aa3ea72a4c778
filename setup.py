from pathlib import Path
from setuptools import setup, find_packages


def read_readme() -> str:
    readme_path = Path(__file__).resolve().parent / "README.md"
    return readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""


setup(
    name="kdbxdecode",
    version="1.0.0",
    packages=find_packages(exclude=("tests", "tests.*", "debug")),
    install_requires=[
        "cryptography>=41.0.0",
        "defusedxml>=0.7.1",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["kdbxdecode=kdbxdecode.main:main"],
    },
    python_requires=">=3.10",
    description="Decrypt, verify and decode the body of a KDBX password database",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
)
