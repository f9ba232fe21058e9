from setuptools import find_packages, setup

# Physical structure matches import path
packages = find_packages(where="../..", include=["stylegen.cli", "stylegen.cli.*"])

setup(
    packages=packages,
    package_dir={"": "../.."},
)
