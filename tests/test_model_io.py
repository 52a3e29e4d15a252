import os

import pytest
import torch

from model_io import EMISSION_WEIGHTS, FEATURE_DICTIONARY, TAG_DICTIONARY, TRANSITION_WEIGHTS, load_model, save_model
from perceptron import Model, Tagger, Trainer


def _trained_model():
    generator = torch.Generator().manual_seed(5)
    num_tags, num_features = 3, 12
    trainer = Trainer(num_tags, num_features)
    corpus = []
    for _ in range(40):
        length = int(torch.randint(1, 7, (1,), generator=generator))
        gold = torch.randint(0, num_tags, (length,), generator=generator).tolist()
        # Each tag owns four features, plus one shared noisy feature
        words = [list(dict.fromkeys([4 * tag + int(torch.randint(0, 4, (1,), generator=generator)),
                                     int(torch.randint(0, num_features, (1,), generator=generator))]))
                 for tag in gold]
        corpus.append((words, gold))
    for _ in range(3):
        for words, gold in corpus:
            trainer.learn_from_one_instance(words, gold)
    return trainer.get_model(), corpus


def test_round_trip_reproduces_weights_and_decodes(tmp_path):
    model, corpus = _trained_model()
    tag_to_idx = {"B-PER": 0, "I-PER": 1, "O": 2}
    feature_to_idx = {f"f{i}": i for i in range(model.num_features)}
    model_dir = str(tmp_path / "model")

    save_model(model_dir, model, tag_to_idx, feature_to_idx)
    loaded, loaded_tags, loaded_features = load_model(model_dir)

    assert loaded_tags == tag_to_idx
    assert loaded_features == feature_to_idx
    assert torch.equal(loaded.emission, model.emission)
    assert torch.equal(loaded.transition, model.transition)

    original_tagger, loaded_tagger = Tagger(model), Tagger(loaded)
    held_out = [[sorted({(f + 5) % model.num_features for f in w}) for w in words] for words, _ in corpus]
    for words in held_out:
        assert loaded_tagger.label(words) == original_tagger.label(words)


def test_zero_weights_are_not_written(tmp_path):
    model = Model(torch.tensor([[0.0, 1.5], [0.0, 0.0]]), torch.tensor([[0.0, -0.25], [0.0, 0.0]]))
    save_model(str(tmp_path), model, {"A": 0, "B": 1}, {"x": 0, "y": 1})

    assert (tmp_path / EMISSION_WEIGHTS).read_text(encoding='utf-8') == "0\t1\t1.5\n"
    assert (tmp_path / TRANSITION_WEIGHTS).read_text(encoding='utf-8') == "0\t1\t-0.25\n"
    assert (tmp_path / TAG_DICTIONARY).read_text(encoding='utf-8') == "A\t0\nB\t1\n"


def test_hashed_model_has_no_feature_dictionary(tmp_path):
    model = Model.zeros(2, 16)
    model.emission[1, 9] = 0.75
    save_model(str(tmp_path), model, {"A": 0, "B": 1})

    assert not os.path.exists(tmp_path / FEATURE_DICTIONARY)
    with pytest.raises(ValueError):
        load_model(str(tmp_path))

    loaded, _, feature_to_idx = load_model(str(tmp_path), hash_bits=4)
    assert feature_to_idx is None
    assert loaded.num_features == 16
    assert torch.equal(loaded.emission, model.emission)


def test_malformed_weight_file_is_reported(tmp_path):
    save_model(str(tmp_path), Model.zeros(2, 2), {"A": 0, "B": 1}, {"x": 0, "y": 1})
    (tmp_path / EMISSION_WEIGHTS).write_text("0\t1\n", encoding='utf-8')
    with pytest.raises(ValueError, match=":1:"):
        load_model(str(tmp_path))
