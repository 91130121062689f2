from setuptools import find_packages, setup

setup(
    name="sprig",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "sprig=sprig.cli:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "test": ["pytest"],
    },
    description="Sprig: a small local version-control system with branches and three-way merge",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Version Control",
        "Programming Language :: Python :: 3.12",
    ],
)
