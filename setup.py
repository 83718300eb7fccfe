# setup.py
from setuptools import setup, find_packages

setup(
    name="site_diff",
    version="0.1.0",
    description="Сравнение HTML двух версий сайта (до/после миграции)",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"site_diff": ["templates/*.j2"]},
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "soupsieve>=2.5",
        "click>=8.1",
        "Jinja2>=3.1",
        "pydantic>=2.5",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "site_diff=site_diff.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
