import os
import re

from setuptools import find_packages, setup

# get the path of the current file
script_dir = os.path.dirname(os.path.abspath(__file__))


# read the version from lazyquery/__init__.py, which is `__version__ = "0.1.0"`
def get_version():
    init_file = os.path.join(script_dir, "lazyquery", "__init__.py")
    with open(init_file, "r") as f:
        init_content = f.read()
    match = re.search(r"^__version__ = [\"']([^\"']+)[\"']", init_content, re.M)
    if not match:
        raise RuntimeError("Unable to find __version__ in " + init_file)
    return match.group(1)


def get_long_description():
    readme = os.path.join(script_dir, "README.md")
    if not os.path.exists(readme):
        return ""
    with open(readme, "r") as f:
        return f.read()


# this will be executed by pip install / python setup.py bdist_wheel
if __name__ == "__main__":
    try:
        setup(
            name="lazyquery",
            version=get_version(),
            description="Lazy tabular query engine: immutable plans translated to SQL and run on chdb",
            long_description=get_long_description(),
            long_description_content_type="text/markdown",
            packages=find_packages(include=["lazyquery", "lazyquery.*"]),
            install_requires=[
                "chdb>=2.0.0",
                "pandas>=1.5.0",
                "numpy>=1.21.0",
            ],
            extras_require={
                "test": ["pytest>=7.0"],
            },
            python_requires='>=3.8',
            test_suite="lazyquery.tests",
            zip_safe=False,
        )
    except Exception as e:
        print("Build from setup.py failed. Error: ")
        print(e)
        raise
