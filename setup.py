"""Setup script for the sockserve package."""

from setuptools import setup, find_namespace_packages

requires = ["attrs>=19.3.0", "blinker>=1.4", "trio>=0.22.0", "trio_util>=0.7.0"]

__version__ = None
exec(open("src/sockserve/connections/version.py").read())

setup(
    name="sockserve",
    version=__version__,
    packages=find_namespace_packages("src", include=["sockserve", "sockserve.*"]),
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requires,
    extras_require={"test": ["pytest>=7.0", "pytest-trio>=0.8.0"]},
    test_suite="test",
)
