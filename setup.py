from setuptools import setup, find_packages

setup(
    name="kestra-infra",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "python-dotenv>=1.0",
        "jinja2>=3.0",
        "aws-cdk-lib>=2.100.0",
        "constructs>=10.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
        "dev": [
            "black>=23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kestra-infra=kestra_infra.CLI.main:main",
        ],
    },
)
