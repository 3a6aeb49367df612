from setuptools import find_packages, setup

setup(
    name="bunkerclient",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2",
        "cryptography",
        "requests",
        "click",
        "bech32",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "bunkerclient=bunkerclient.cli:cli",
        ],
    },
)
