[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "hammer"
version = "0.1.0"
description = "Digital asset aggregation: wallets, balances, currencies and prices stored in a relational database"
requires-python = ">=3.10"
dependencies = [
    "sqlalchemy>=2.0",
]
keywords = ["assets", "portfolio", "balances", "prices", "crypto", "sqlalchemy", "migrations"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Financial and Insurance Industry",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
hammer-migrate = "hammer.migrations:main"

[tool.setuptools.packages.find]
include = ["hammer*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
