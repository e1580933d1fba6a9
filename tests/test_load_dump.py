import json
import logging
import math
import os
import pathlib
import tempfile
import textwrap

import pytest

import skyglide
import tests


def constant_model_dict():
    return dict(
        description="constant",
        trajectory=dict(grid_times=[0, 10], log_pop_sizes=[1, 1], intercept=5),
        trees=[dict(name="t1", sample_heights=[0, 0, 0], coalescence_heights=[1, 2.5])],
    )


def zero_size_model_dict():
    return dict(
        trajectory=dict(grid_times=[0, 10], log_pop_sizes=[0, 1]),
        trees=[dict(name="t1", sample_heights=[0, 0], coalescence_heights=[1])],
    )


class TestLoadAndDump:
    def test_bad_format_param(self):
        ex = tests.example_files()[0]
        with open(ex) as f:
            ex_string = f.read()

        with pytest.raises(ValueError):
            skyglide.load(ex, format="not a format")
        with pytest.raises(ValueError):
            skyglide.loads(ex_string, format="not a format")

        model = skyglide.loads(ex_string)
        with pytest.raises(ValueError):
            skyglide.dumps(model, format="not a format")
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "never-created"
            with pytest.raises(ValueError):
                skyglide.dump(model, tmpfile, format="not a format")

    def test_bad_filename_param(self):
        model = skyglide.Model.fromdict(constant_model_dict())

        class F:
            pass

        f_w = F()
        f_w.write = True
        f_r = F()
        f_r.read = None
        for bad_file in [None, -1, object(), f_w, f_r]:
            with pytest.raises(Exception):
                skyglide.dump(model, bad_file)
            with pytest.raises(Exception):
                skyglide.load(bad_file)

    def test_loads_yaml_simple(self):
        string = textwrap.dedent(
            """\
            description: foo
            trajectory:
              grid_times: [0, 1, 2]
              log_pop_sizes: [0.5, 0.6, 0.7]
              intercept: [1, 2, 3]
            trees:
              - name: a
                partition: locus1
                sample_heights: [0, 0, 0.25]
                coalescence_heights: [0.5, 1.5]
                max_height: 3
              - sample_heights: [0, 0]
                coalescence_heights: [0.1]
            """
        )
        model = skyglide.loads(string)
        assert model.description == "foo"
        assert list(model.trajectory.grid_times) == [0, 1, 2]
        assert list(model.trajectory.log_pop_sizes) == [0.5, 0.6, 0.7]
        assert model.trajectory.intercept == [1, 2, 3]
        assert not model.conditioned
        assert model.threshold == 0
        assert len(model.trees) == 2
        assert model.trees[0].name == "a"
        assert model.trees[0].partition == "locus1"
        assert model.trees[0].genealogy.max_height == 3
        assert model.trees[1].name == "tree_1"
        assert model.trees[1].partition == "default"
        assert model.trees[1].genealogy.max_height is None

    def test_loads_json_simple(self):
        string = json.dumps(constant_model_dict())
        model = skyglide.loads(string, format="json")
        assert model.description == "constant"
        assert model.trajectory.intercept == 5
        assert model.trees[0].genealogy.coalescence_heights == [1, 2.5]

    @pytest.mark.parametrize("yaml_file", tests.example_files())
    def test_loads_examples(self, yaml_file):
        with open(yaml_file) as f:
            string = f.read()
        model1 = skyglide.load(yaml_file)
        model2 = skyglide.loads(string)
        assert model1.isclose(model2)

    @pytest.mark.parametrize("format", ["yaml", "json"])
    @pytest.mark.parametrize("yaml_file", tests.example_files())
    def test_examples_load_dump_load(self, yaml_file, format):
        model1 = skyglide.load(yaml_file)
        string = skyglide.dumps(model1, format=format)
        model2 = skyglide.loads(string, format=format)
        assert model1.isclose(model2)
        assert model1.asdict() == model2.asdict()

    @pytest.mark.parametrize("format", ["yaml", "json"])
    def test_dump_against_dumps(self, format):
        model = skyglide.Model.fromdict(constant_model_dict())
        dumps_str = skyglide.dumps(model, format=format)
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile1 = pathlib.Path(tmpdir) / "temp1.yaml"
            skyglide.dump(model, tmpfile1, format=format)
            with open(tmpfile1) as f:
                assert f.read() == dumps_str
            tmpfile2 = pathlib.Path(tmpdir) / "temp2.yaml"
            skyglide.dump(model, str(tmpfile2), format=format)
            with open(tmpfile2) as f:
                assert f.read() == dumps_str

    def test_asdict(self):
        model = skyglide.Model.fromdict(constant_model_dict())
        data = model.asdict()
        assert data["trajectory"]["intercept"] == 5.0
        assert isinstance(data["trajectory"]["intercept"], float)
        assert data["conditioned"] is False
        assert data["trees"][0]["partition"] == "default"
        assert "max_height" not in data["trees"][0]

    def test_fromdict_does_not_modify_input(self):
        data = constant_model_dict()
        skyglide.Model.fromdict(data)
        assert data == constant_model_dict()

    def test_isclose(self):
        model1 = skyglide.Model.fromdict(constant_model_dict())
        data = constant_model_dict()
        data["trajectory"]["intercept"] = 5 + 1e-12
        assert model1.isclose(skyglide.Model.fromdict(data))
        data["trajectory"]["intercept"] = 5.1
        assert not model1.isclose(skyglide.Model.fromdict(data))
        assert not model1.isclose(None)


class TestValidation:
    def test_unknown_toplevel_field(self):
        data = constant_model_dict()
        data["populations"] = []
        with pytest.raises(KeyError):
            skyglide.Model.fromdict(data)

    def test_unknown_trajectory_field(self):
        data = constant_model_dict()
        data["trajectory"]["slope"] = 1
        with pytest.raises(KeyError):
            skyglide.Model.fromdict(data)

    def test_unknown_tree_field(self):
        data = constant_model_dict()
        data["trees"][0]["topology"] = "((a,b),c)"
        with pytest.raises(KeyError):
            skyglide.Model.fromdict(data)

    @pytest.mark.parametrize("field", ["grid_times", "log_pop_sizes"])
    def test_missing_trajectory_field(self, field):
        data = constant_model_dict()
        del data["trajectory"][field]
        with pytest.raises(KeyError):
            skyglide.Model.fromdict(data)

    def test_missing_trajectory(self):
        data = constant_model_dict()
        del data["trajectory"]
        with pytest.raises(KeyError):
            skyglide.Model.fromdict(data)

    def test_not_a_mapping(self):
        with pytest.raises(TypeError):
            skyglide.Model.fromdict([])
        with pytest.raises(TypeError):
            skyglide.loads("- 1\n- 2\n")

    def test_null_value(self):
        string = textwrap.dedent(
            """\
            trajectory:
              grid_times: [0, 1]
              log_pop_sizes: [0, 1]
              intercept: null
            """
        )
        with pytest.raises(ValueError, match="non-null"):
            skyglide.loads(string)

    def test_null_list_element(self):
        string = textwrap.dedent(
            """\
            trajectory:
              grid_times: [0, null]
              log_pop_sizes: [0, 1]
            """
        )
        with pytest.raises(ValueError, match="non-null"):
            skyglide.loads(string)

    def test_length_mismatch(self):
        data = constant_model_dict()
        data["trajectory"]["log_pop_sizes"] = [1, 1, 1]
        with pytest.raises(skyglide.ConfigurationError):
            skyglide.Model.fromdict(data)

    def test_intercept_length_mismatch(self):
        data = constant_model_dict()
        data["trajectory"]["intercept"] = [1, 2, 3]
        with pytest.raises(skyglide.ConfigurationError):
            skyglide.Model.fromdict(data)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("grid_times", ["a", 1]),
            ("grid_times", 1),
            ("intercept", "5"),
            ("intercept", [1, "x"]),
        ],
    )
    def test_bad_trajectory_types(self, field, value):
        data = constant_model_dict()
        data["trajectory"][field] = value
        with pytest.raises(TypeError):
            skyglide.Model.fromdict(data)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("sample_heights", ["0", 0, 0]),
            ("coalescence_heights", 1.0),
            ("max_height", "3"),
            ("name", 1),
            ("partition", ["locus"]),
        ],
    )
    def test_bad_tree_types(self, field, value):
        data = constant_model_dict()
        data["trees"][0][field] = value
        with pytest.raises(TypeError):
            skyglide.Model.fromdict(data)

    def test_negative_height(self):
        data = constant_model_dict()
        data["trees"][0]["sample_heights"] = [0, -1, 0]
        with pytest.raises(ValueError):
            skyglide.Model.fromdict(data)

    def test_bad_conditioned(self):
        data = constant_model_dict()
        data["conditioned"] = "yes"
        with pytest.raises(TypeError):
            skyglide.Model.fromdict(data)

    def test_negative_threshold(self):
        data = constant_model_dict()
        data["threshold"] = -0.1
        with pytest.raises(ValueError):
            skyglide.Model.fromdict(data)

    def test_duplicate_tree_names(self):
        data = constant_model_dict()
        data["trees"].append(dict(data["trees"][0]))
        with pytest.raises(ValueError, match="unique"):
            skyglide.Model.fromdict(data)

    def test_wrong_number_of_coalescences(self):
        data = constant_model_dict()
        data["trees"][0]["coalescence_heights"] = [1]
        model = skyglide.Model.fromdict(data)
        with pytest.raises(skyglide.DimensionMismatchError):
            model.aggregator().log_likelihood()


class TestModelLikelihood:
    def test_constant(self):
        model = skyglide.Model.fromdict(constant_model_dict())
        assert model.aggregator().log_likelihood() == pytest.approx(-0.9)

    def test_partitions_follow_trees(self, two_loci_model):
        aggregator = two_loci_model.aggregator()
        assert len(aggregator) == 3
        assert aggregator.partitions == ["locus1", "locus2"]
        partitions = aggregator.partition_log_likelihoods()
        assert partitions["locus1"] == pytest.approx(
            aggregator.tree_log_likelihood(0) + aggregator.tree_log_likelihood(1)
        )
        assert partitions["locus2"] == pytest.approx(aggregator.tree_log_likelihood(2))

    def test_conditioned_override(self):
        model = skyglide.Model.fromdict(constant_model_dict())
        assert isinstance(model.accumulator(), skyglide.SkygridAccumulator)
        accumulator = model.accumulator(conditioned=True, threshold=0.5)
        assert isinstance(accumulator, skyglide.MaxTMRCAAccumulator)
        assert accumulator.threshold == 0.5
        assert accumulator.demography is model.trajectory

    def test_zero_size_at_time_zero_warns(self):
        model = skyglide.Model.fromdict(zero_size_model_dict())
        with pytest.warns(UserWarning, match="intercept"):
            aggregator = model.aggregator()
        assert aggregator.log_likelihood() == -math.inf

    def test_no_warning_with_intercept(self, recwarn):
        data = zero_size_model_dict()
        data["trajectory"]["intercept"] = 1
        skyglide.Model.fromdict(data).aggregator()
        assert len(recwarn) == 0

    def test_zero_size_at_horizon_warns(self):
        # N(t) = -t is positive before the horizon and zero at it.
        data = dict(
            trajectory=dict(grid_times=[-5, 0], log_pop_sizes=[1, 0]),
            conditioned=True,
            trees=[
                dict(
                    name="t1",
                    sample_heights=[0, 0],
                    coalescence_heights=[1],
                    max_height=1,
                )
            ],
        )
        model = skyglide.Model.fromdict(data)
        with pytest.warns(UserWarning, match="horizon"):
            aggregator = model.aggregator()
        assert aggregator.log_likelihood() == -math.inf

    def test_no_horizon_warning_with_intercept(self, recwarn):
        data = zero_size_model_dict()
        data["trajectory"]["intercept"] = 20
        skyglide.Model.fromdict(data).aggregator(conditioned=True)
        assert len(recwarn) == 0


class TestBreakdown:
    def test_breakdown_yaml(self):
        model = skyglide.Model.fromdict(constant_model_dict())
        aggregator = model.aggregator()
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "breakdown.yaml"
            assert skyglide.dump_breakdown(aggregator, tmpfile)
            data = skyglide.load_asdict(tmpfile)
        assert data["log_likelihood"] == pytest.approx(-0.9)
        assert data["partitions"]["default"] == pytest.approx(-0.9)
        assert data["trees"] == [pytest.approx(-0.9)]

    def test_breakdown_json_infinities_get_stringified(self):
        model = skyglide.Model.fromdict(zero_size_model_dict())
        with pytest.warns(UserWarning):
            aggregator = model.aggregator()
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "breakdown.json"
            assert skyglide.dump_breakdown(aggregator, tmpfile, format="json")
            with open(tmpfile) as f:
                data = json.load(f)
        assert data["log_likelihood"] == "-Infinity"
        assert data["trees"] == ["-Infinity"]

    def test_unwritable_breakdown(self, caplog):
        model = skyglide.Model.fromdict(constant_model_dict())
        aggregator = model.aggregator()
        before = aggregator.log_likelihood()
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "no-such-dir" / "breakdown.yaml"
            with caplog.at_level(logging.WARNING):
                assert not skyglide.dump_breakdown(aggregator, tmpfile)
            assert not tmpfile.exists()
        assert "Could not export" in caplog.text
        assert aggregator.log_likelihood() == before

    def test_breakdown_bad_format(self):
        model = skyglide.Model.fromdict(constant_model_dict())
        with pytest.raises(ValueError):
            skyglide.dump_breakdown(model.aggregator(), os.devnull, format="xml")


class TestOpenFilePolymorph:
    def test_fileobj_doesnt_get_closed(self):
        devnull = open(os.devnull)
        with skyglide.load_dump._open_file_polymorph(devnull, "w") as f:
            pass
        assert not f.closed
        assert not devnull.closed
        devnull.close()

    def test_fileobj_doesnt_get_closed_on_error(self):
        devnull = open(os.devnull)
        try:
            with skyglide.load_dump._open_file_polymorph(devnull, "w") as f:
                raise ValueError
        except ValueError:
            pass
        assert not f.closed
        assert not devnull.closed
        devnull.close()

    def test_no_file_descriptor_leak(self):
        with skyglide.load_dump._open_file_polymorph(os.devnull, "w") as f:
            pass
        assert f.closed
