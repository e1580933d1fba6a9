"""
Functions to load and dump models in YAML and JSON formats.
"""
from __future__ import annotations
import contextlib
import json
import io
import logging
import math
from typing import Any, MutableMapping

import ruamel.yaml

import skyglide

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _open_file_polymorph(polymorph, mode="r"):
    """
    Open polymorph as a path and yield the fileobj. If that fails,
    just yield polymorph under the assumption it's a fileobj.
    """
    try:
        # We must specify utf8 explicitly for Windows.
        f = open(polymorph, mode, encoding="utf-8")
    except TypeError:
        f = polymorph
    try:
        yield f
    finally:
        if f is not polymorph:
            f.close()


def _load_yaml_asdict(fp) -> MutableMapping[str, Any]:
    with ruamel.yaml.YAML(typ="safe") as yaml:
        return yaml.load(fp)


def _dump_yaml_fromdict(data, fp) -> None:
    with ruamel.yaml.YAML(typ="safe", output=fp) as yaml:
        # Output flow style, but only for collections that consist only
        # of scalars (i.e. the leaves in the document tree).
        yaml.default_flow_style = None
        yaml.allow_unicode = False
        yaml.sort_base_mapping_type_on_output = False
        yaml.dump(data)


def _no_null_values(data: MutableMapping[str, Any]) -> None:
    """
    Checks for any null values in the input data.
    """

    def check_if_None(key, val):
        if val is None:
            raise ValueError(f"{key} must have a non-null value")

    def assert_no_nulls(d):
        for k, v in d.items():
            if isinstance(v, dict):
                assert_no_nulls(v)
            elif isinstance(v, list):
                for e in v:
                    if isinstance(e, dict):
                        assert_no_nulls(e)
                    else:
                        check_if_None(k, e)
            else:
                check_if_None(k, v)

    if not isinstance(data, dict):
        raise TypeError("model document must be a mapping")
    assert_no_nulls(data)


def loads_asdict(string, *, format="yaml") -> MutableMapping[str, Any]:
    """
    Load a YAML or JSON string into a dictionary of nested objects.
    The input is *not* validated.

    :param str string: The string to be loaded.
    :param str format: The format of the input string. Either "yaml" or "json".
    :return: A dictionary of nested objects.
    :rtype: dict
    """
    with io.StringIO(string) as stream:
        return load_asdict(stream, format=format)


def load_asdict(filename, *, format="yaml") -> MutableMapping[str, Any]:
    """
    Load a YAML or JSON file into a dictionary of nested objects.
    The input is *not* validated.

    :param filename: The path to the file to be loaded, or a file-like object
        with a ``read()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the input file. Either "yaml" or "json".
    :return: A dictionary of nested objects.
    :rtype: dict
    """
    if format == "json":
        with _open_file_polymorph(filename) as f:
            data = json.load(f)
    elif format == "yaml":
        with _open_file_polymorph(filename) as f:
            data = _load_yaml_asdict(f)
    else:
        raise ValueError(f"unknown format: {format}")
    _no_null_values(data)
    return data


def loads(string, *, format="yaml") -> skyglide.Model:
    """
    Load a model from a YAML or JSON string.

    :param str string: The string to be loaded.
    :param str format: The format of the input string. Either "yaml" or "json".
    :return: A validated model.
    :rtype: skyglide.Model
    """
    data = loads_asdict(string, format=format)
    return skyglide.Model.fromdict(data)


def load(filename, *, format="yaml") -> skyglide.Model:
    """
    Load a model from a YAML or JSON file.

    :param filename: The path to the file to be loaded, or a file-like object
        with a ``read()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the input file. Either "yaml" or "json".
    :return: A validated model.
    :rtype: skyglide.Model
    """
    data = load_asdict(filename, format=format)
    return skyglide.Model.fromdict(data)


def _dump_data(data, filename, format):
    if format == "json":
        with _open_file_polymorph(filename, "w") as f:
            json.dump(data, f, allow_nan=False, indent=2)
    elif format == "yaml":
        with _open_file_polymorph(filename, "w") as f:
            _dump_yaml_fromdict(data, f)
    else:
        raise ValueError(f"unknown format: {format}")


def dumps(model, *, format="yaml") -> str:
    """
    Dump the specified model to a YAML or JSON string.

    :param skyglide.Model model: The model to dump.
    :param str format: The format of the output. Either "yaml" or "json".
    :return: The YAML or JSON string.
    :rtype: str
    """
    with io.StringIO() as stream:
        dump(model, stream, format=format)
        string = stream.getvalue()
    return string


def dump(model, filename, *, format="yaml") -> None:
    """
    Dump the specified model to a file.

    :param skyglide.Model model: The model to dump.
    :param filename: Path to the output file, or a file-like object with a
        ``write()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the output file. Either "yaml" or "json".
    """
    _dump_data(model.asdict(), filename, format)


def _finite_or_str(value: float):
    # JSON has no encoding for infinity, and -inf is an ordinary result.
    if math.isinf(value):
        return "-Infinity" if value < 0 else "Infinity"
    return float(value)


def breakdown_asdict(aggregator) -> MutableMapping[str, Any]:
    """
    Return the total, per-partition and per-tree log-likelihoods of an
    aggregator as a dictionary.

    :param skyglide.MultiTreeAggregator aggregator: The aggregator.
    :rtype: dict
    """
    partitions = aggregator.partition_log_likelihoods()
    return dict(
        log_likelihood=_finite_or_str(aggregator.log_likelihood()),
        partitions={name: _finite_or_str(v) for name, v in partitions.items()},
        trees=[
            _finite_or_str(aggregator.tree_log_likelihood(tree_id))
            for tree_id in range(len(aggregator))
        ],
    )


def dump_breakdown(aggregator, filename, *, format="yaml") -> bool:
    """
    Write the log-likelihood breakdown of an aggregator to a file,
    for diagnostic purposes.

    This is best effort: if the file cannot be written, a warning is
    logged and False is returned. The aggregator's values are unaffected.

    :param skyglide.MultiTreeAggregator aggregator: The aggregator.
    :param filename: Path to the output file, or a file-like object with a
        ``write()`` method.
    :param str format: The format of the output file. Either "yaml" or "json".
    :return: True if the breakdown was written.
    :rtype: bool
    """
    data = breakdown_asdict(aggregator)
    try:
        _dump_data(data, filename, format)
    except OSError as e:
        logger.warning(f"Could not export log-likelihood breakdown: {e}")
        return False
    return True
