from setuptools import setup, find_packages

setup(
    name="request-rules",
    version="0.1.0",
    description="Declarative validation rules for request query parameters and bodies",
    author="request-rules contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        'request_rules': ['local-config.yaml', 'rulesets.yaml'],
    },
    include_package_data=True,
    install_requires=[
        'pyyaml>=6.0',
        'jsonschema>=4.17.0',
        'requests>=2.28.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': [
            'request-rules-rpc=request_rules.jsonrpc_server:main',
        ],
    },
    python_requires='>=3.9',
)
