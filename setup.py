"""Setup configuration for the Chatwarden group-chat moderation bot."""

from setuptools import setup, find_packages

setup(
    name="chatwarden",
    version="0.0.1",
    description="A group-chat moderation bot with durable strike tracking",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "jsonschema",
        "prompt_toolkit",
        "python-dotenv",
        "PyYAML",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "chatwarden=chatwarden.main:main",
        ],
    },
)
