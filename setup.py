from setuptools import setup, find_packages

with open("VERSION", "r") as f:
    version = f.read().strip()

with open("requirements.txt", "r") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="tradekit",
    version=version,
    description="Kraken REST market client behind a uniform exchange contract",
    packages=find_packages(include=["tradekit", "tradekit.*", "tools"]),
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    include_package_data=True,
    package_data={
        "": ["VERSION"]
    },
    entry_points={
        "console_scripts": [
            "krakenctl=tools.krakenctl:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
