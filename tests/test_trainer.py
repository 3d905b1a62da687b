import math

import pytest

from segner.config import TrainerConfig
from segner.data.instance import TrainingInstance
from segner.errors import EmptyCorpusError, FileLoadError, InvalidParameterError, InvalidRangeError
from segner.features.provider import EmbeddingFileProvider
from segner.models.segmenter import SpanDetectorTrainer
from segner.trainer import NERTrainer


@pytest.fixture
def trainer(provider):
    return NERTrainer(provider)


def test_defaults(trainer):
    assert trainer.size() == 0
    assert len(trainer) == 0
    assert trainer.get_beta() == 0.5
    assert trainer.get_num_threads() == 16
    assert trainer.get_all_labels() == []


def test_loads_feature_file(embedding_file):
    trainer = NERTrainer(embedding_file)
    assert isinstance(trainer.feature_provider, EmbeddingFileProvider)
    assert trainer.feature_provider.dimensions == 4


def test_unloadable_feature_file(tmp_path):
    with pytest.raises(FileLoadError):
        NERTrainer(tmp_path / "missing.txt")


class TestAdd:
    def test_labels_get_ids_in_first_seen_order(self, trainer):
        trainer.add(["a", "b", "c"], [(0, 1), (2, 3)], ["PERSON", "LOCATION"])
        trainer.add(["d", "e"], [(0, 1), (1, 2)], ["LOCATION", "PERSON"])

        assert trainer.get_all_labels() == ["PERSON", "LOCATION"]
        assert trainer.get_label_id("PERSON") == 1
        assert trainer.get_label_id("LOCATION") == 2
        with pytest.raises(KeyError):
            trainer.get_label_id("ORG")

    def test_size_counts_sentences_including_unannotated(self, trainer):
        trainer.add(["a", "b"])
        trainer.add(["c"], [(0, 1)], ["X"])
        assert trainer.size() == 2

    def test_add_instance(self, trainer):
        instance = TrainingInstance(["Ada", "Lovelace", "wrote"])
        instance.add_entity((0, 2), "PERSON")
        trainer.add(instance)
        assert trainer.size() == 1
        assert trainer.get_all_labels() == ["PERSON"]

    def test_instance_is_copied(self, trainer):
        instance = TrainingInstance(["a", "b", "c"])
        instance.add_entity((0, 1), "X")
        trainer.add(instance)
        instance.add_entity((2, 3), "Y")
        assert trainer.get_all_labels() == ["X"]

    def test_instance_with_ranges_is_rejected(self, trainer):
        with pytest.raises(TypeError):
            trainer.add(TrainingInstance(["a"]), [(0, 1)], ["X"])

    @pytest.mark.parametrize(
        "ranges, labels",
        [
            ([(0, 2), (1, 3)], ["X", "Y"]),
            ([(0, 4)], ["X"]),
            ([(0, 1)], ["X", "Y"]),
        ],
        ids=["overlap", "out-of-bounds", "length-mismatch"],
    )
    def test_invalid_sentence_adds_nothing(self, trainer, ranges, labels):
        with pytest.raises(InvalidRangeError):
            trainer.add(["a", "b", "c"], ranges, labels)
        assert trainer.size() == 0
        assert trainer.get_all_labels() == []


class TestAddMany:
    def test_adds_all(self, trainer, small_corpus):
        tokens, ranges, labels = zip(*small_corpus)
        trainer.add_many(tokens, ranges, labels)
        assert trainer.size() == 3
        assert trainer.get_all_labels() == ["PERSON", "LOCATION"]

    def test_failure_leaves_trainer_unchanged(self, trainer):
        trainer.add(["x"], [(0, 1)], ["FIRST"])
        with pytest.raises(InvalidRangeError):
            trainer.add_many(
                [["a", "b"], ["c", "d"]],
                [[(0, 1)], [(0, 5)]],
                [["NEW"], ["NEWER"]],
            )
        assert trainer.size() == 1
        assert trainer.get_all_labels() == ["FIRST"]

    def test_mismatched_lengths(self, trainer):
        with pytest.raises(InvalidRangeError):
            trainer.add_many([["a"]], [], [])


class TestParameters:
    @pytest.mark.parametrize("beta", [0, 0.25, 1, 3.5])
    def test_set_beta(self, trainer, beta):
        trainer.set_beta(beta)
        assert trainer.get_beta() == beta

    @pytest.mark.parametrize("beta", [-0.1, math.nan, math.inf, "high"])
    def test_invalid_beta(self, trainer, beta):
        with pytest.raises(InvalidParameterError):
            trainer.set_beta(beta)
        assert trainer.get_beta() == 0.5

    def test_set_num_threads(self, trainer):
        trainer.set_num_threads(4)
        assert trainer.get_num_threads() == 4

    @pytest.mark.parametrize("num", [0, -2, 1.5, True])
    def test_invalid_num_threads(self, trainer, num):
        with pytest.raises(InvalidParameterError):
            trainer.set_num_threads(num)
        assert trainer.get_num_threads() == 16

    def test_setters_do_not_touch_shared_config(self, provider):
        config = TrainerConfig()
        trainer = NERTrainer(provider, config)
        trainer.set_beta(2.0)
        assert config.beta == 0.5


def test_caller_config_changes_do_not_leak(provider):
    config = TrainerConfig()
    trainer = NERTrainer(provider, config)
    config.beta = -1.0
    config.num_threads = 0
    assert trainer.get_beta() == 0.5
    assert trainer.get_num_threads() == 16


@pytest.mark.parametrize("beta", [0.0, 2.0])
def test_beta_reaches_span_detector_training(provider, fast_config, monkeypatch, beta):
    seen = {}

    class RecordingDetectorTrainer(SpanDetectorTrainer):
        def __init__(self, **kwargs):
            seen.update(kwargs)
            super().__init__(**kwargs)

    monkeypatch.setattr("segner.trainer.SpanDetectorTrainer", RecordingDetectorTrainer)
    trainer = NERTrainer(provider, fast_config)
    trainer.add(["Alice", "slept", "well"], [(0, 1)], ["PERSON"])
    trainer.set_beta(beta)
    trainer.train()

    assert seen["beta"] == beta
    assert seen["num_threads"] == 1


def test_train_on_empty_corpus(trainer):
    with pytest.raises(EmptyCorpusError):
        trainer.train()


def test_repr(trainer):
    trainer.add(["a"], [(0, 1)], ["X"])
    assert repr(trainer) == "NERTrainer(size=1, labels=['X'], beta=0.5, num_threads=16)"
