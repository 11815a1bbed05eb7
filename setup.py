from setuptools import find_packages, setup


def _requirements(path):
    return [line for line in open(path).read().splitlines() if line and not line.startswith("#")]


setup(
    name="stepflow",
    version="1.0.0",
    packages=find_packages(include=["stepflow", "stepflow.*"]),
    install_requires=_requirements("requirements-core.txt"),
    extras_require={"dev": _requirements("requirements-dev.txt")},
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "stepflow=stepflow.cli:main",
        ],
    },
)
