from setuptools import setup, find_packages

setup(
    name="robustcore",
    version="1.0.0",
    description="Robust MSAC model fitting and approximate K-Means clustering",
    author="NovaVista",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    install_requires=[
        "opencv-python>=4.8.0",
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.9",
)
