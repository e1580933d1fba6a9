import os
import pathlib

import hypothesis
import pytest

import skyglide

# Test more thoroughly during continuous integration.
hypothesis.settings.register_profile(
    "ci",
    max_examples=1000,
    print_blob=True,
    deadline=None,
    suppress_health_check=[hypothesis.HealthCheck.too_slow],
)
# Likelihood evaluations are fast, but quadrature comparisons are not.
hypothesis.settings.register_profile(
    "default",
    max_examples=200,
    deadline=None,
    suppress_health_check=[hypothesis.HealthCheck.too_slow],
)

# GitHub Actions sets the CI environment variable.
if os.getenv("CI", False):
    hypothesis.settings.load_profile("ci")
else:
    hypothesis.settings.load_profile("default")

EXAMPLES_DIR = pathlib.Path(__file__).parent.resolve() / ".." / "examples"


@pytest.fixture
def example_path():
    """Return the path of a model file in the examples directory."""

    def path(name):
        return EXAMPLES_DIR / f"{name}.yaml"

    return path


@pytest.fixture
def constant_model(example_path):
    return skyglide.load(example_path("constant"))


@pytest.fixture
def two_loci_model(example_path):
    return skyglide.load(example_path("two_loci"))
