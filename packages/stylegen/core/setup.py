from setuptools import find_packages, setup

# Physical structure matches import path
packages = find_packages(where="../..", include=["stylegen.core", "stylegen.core.*"])

setup(
    packages=packages,
    package_dir={"": "../.."},
)
