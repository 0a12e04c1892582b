[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "meshpatterns"
version = "0.1.0"
description = "Building blocks for small HTTP microservice setups: load balancers, a service registry, routers, rate limiting and a reverse proxy."
requires-python = ">=3.10"
keywords = [
    "microservices",
    "load-balancing",
    "service-discovery",
    "reverse-proxy",
    "rate-limiting",
    "routing",
    "wsgi",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
]
dependencies = [
    "werkzeug",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
meshpatterns-discovery = "meshpatterns.discovery_cli:main"
meshpatterns-lb-demo = "meshpatterns.lb_demo:main"

[tool.hatch.build.targets.wheel]
packages = ["meshpatterns"]

[tool.hatch.build.targets.sdist]
include = ["meshpatterns", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
