from setuptools import find_packages, setup
import taplab
import io


with io.open("README.md", encoding="utf-8") as f:
    long_description = f.read()

with io.open("requirements.txt", encoding="utf-8") as f:
    requirements = [r for r in f.read().split('\n') if len(r)]

setup(name="taplab",
      version=taplab.__version__,
      description="A laboratory for building and spending Taproot transactions",
      long_description=long_description,
      long_description_content_type="text/markdown",
      license="MIT",
      packages=find_packages(exclude=["tests", "tests.*"]),
      keywords=["bitcoin", "taproot", "miniscript", "descriptor", "wallet"],
      install_requires=requirements,
      extras_require={"test": ["pytest"]},
      entry_points={"console_scripts": ["taplab=taplab.cli:main"]})
