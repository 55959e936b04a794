from setuptools import setup, find_packages

with open("requirements.txt", "r", encoding="utf-8") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="dropletpilot",
    version="0.1.0",
    description="Blue/green deployment of a registry-hosted container to a single host",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"dropletpilot": ["configs/*.template"]},
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0.0", "pytest-cov>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "dropletpilot=dropletpilot.main:main",
        ],
    },
)
